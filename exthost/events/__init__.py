"""Typed event channels with disposable subscriptions."""

from exthost.events.emitter import Disposable, Emitter, dispose_all

__all__ = ["Disposable", "Emitter", "dispose_all"]
