"""Extension runtime: manifests, records, activation routing and the registry."""

from exthost.extensions.activation import ActivationRouter
from exthost.extensions.context import ExtensionContext
from exthost.extensions.contract import ExtensionInfo, ExtensionKind, ExtensionModule, ExtensionState
from exthost.extensions.loader import ModuleLoader, PythonModuleLoader
from exthost.extensions.manifest import PackageManifest, check_directory, load_package_json
from exthost.extensions.record import ExtensionRecord
from exthost.extensions.registry import ExtensionRegistry

__all__ = [
    "ActivationRouter",
    "ExtensionContext",
    "ExtensionInfo",
    "ExtensionKind",
    "ExtensionModule",
    "ExtensionRecord",
    "ExtensionRegistry",
    "ExtensionState",
    "ModuleLoader",
    "PackageManifest",
    "PythonModuleLoader",
    "check_directory",
    "load_package_json",
]
