"""Durable state: disabled/locked flags and extension mementos."""

from exthost.storage.memos import Memento, Memos
from exthost.storage.state_db import StateDB

__all__ = ["Memento", "Memos", "StateDB"]
