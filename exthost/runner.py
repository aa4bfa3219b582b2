"""Command line entry: bootstrap settings, logging and the registry, then run one command."""

import argparse
import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable

from dotenv import load_dotenv

from exthost.extensions import ExtensionRegistry
from exthost.logging_config import setup_logging
from exthost.packages import InstallQueue
from exthost.settings import apply_env_overrides, extensions_root, get_setting, load_settings
from exthost.workspace import Workspace

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

Command = Callable[[ExtensionRegistry, argparse.Namespace], Awaitable[int]]


def build_registry(settings: dict[str, Any], root: Path) -> ExtensionRegistry:
    workspace = Workspace(
        version=str(get_setting(settings, "host.version", "0.0.82")),
        root_path=Path.cwd(),
    )
    return ExtensionRegistry(root, workspace, settings)


def _print_queue(queue: InstallQueue | None) -> int:
    if queue is None:
        print("Nothing to do.")
        return 0
    for line in queue.lines():
        print(line)
    failed = [e.id for e in queue.entries if e.status.value == "failed"]
    return 1 if failed else 0


async def cmd_install(registry: ExtensionRegistry, args: argparse.Namespace) -> int:
    return _print_queue(await registry.install_extensions(args.ids))


async def cmd_update(registry: ExtensionRegistry, args: argparse.Namespace) -> int:
    return _print_queue(await registry.update_extensions(silent=False))


async def cmd_uninstall(registry: ExtensionRegistry, args: argparse.Namespace) -> int:
    removed = await registry.uninstall(args.ids)
    print(f"Removed: {' '.join(removed)}" if removed else "Nothing removed.")
    return 0 if removed else 1


async def cmd_list(registry: ExtensionRegistry, args: argparse.Namespace) -> int:
    locked = set(registry.get_locked_list())
    for info in await registry.get_extension_states():
        flags = " (locked)" if info.id in locked else ""
        origin = "local" if info.is_local else "global"
        print(f"{info.id}@{info.version} [{info.state}, {origin}]{flags} {info.root}")
    return 0


async def cmd_missing(registry: ExtensionRegistry, args: argparse.Namespace) -> int:
    for item in registry.get_missing_extensions():
        print(item)
    return 0


async def cmd_toggle(registry: ExtensionRegistry, args: argparse.Namespace) -> int:
    await registry.toggle(args.id)
    print(f"{args.id}: {registry.get_extension_state(args.id)}")
    return 0


async def cmd_lock(registry: ExtensionRegistry, args: argparse.Namespace) -> int:
    registry.lock_extension(args.id)
    state = "locked" if args.id in registry.get_locked_list() else "unlocked"
    print(f"{args.id}: {state}")
    return 0


async def cmd_clean(registry: ExtensionRegistry, args: argparse.Namespace) -> int:
    removed = await registry.clean()
    print(f"Removed: {' '.join(removed)}" if removed else "Nothing removed.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="exthost", description="Manage host extensions.")
    parser.add_argument("--root", type=Path, default=None, help="managed extensions root")
    sub = parser.add_subparsers(dest="command", required=True)

    install = sub.add_parser("install", help="install extensions (name, name@version or github URL)")
    install.add_argument("ids", nargs="+")
    install.set_defaults(func=cmd_install)

    sub.add_parser("update", help="update global extensions").set_defaults(func=cmd_update)

    uninstall = sub.add_parser("uninstall", help="remove global extensions")
    uninstall.add_argument("ids", nargs="+")
    uninstall.set_defaults(func=cmd_uninstall)

    sub.add_parser("list", help="list installed extensions").set_defaults(func=cmd_list)
    sub.add_parser("missing", help="manifest entries not on disk").set_defaults(func=cmd_missing)

    toggle = sub.add_parser("toggle", help="enable or disable an extension")
    toggle.add_argument("id")
    toggle.set_defaults(func=cmd_toggle)

    lock = sub.add_parser("lock", help="lock or unlock an extension against updates")
    lock.add_argument("id")
    lock.set_defaults(func=cmd_lock)

    sub.add_parser("clean", help="remove every global extension").set_defaults(func=cmd_clean)
    return parser


async def main_async(args: argparse.Namespace) -> int:
    settings = apply_env_overrides(load_settings())
    root = args.root.expanduser() if args.root else extensions_root(settings)
    setup_logging(root, settings)
    registry = build_registry(settings, root)
    try:
        await registry.init()
        command: Command = args.func
        return await command(registry, args)
    finally:
        await registry.dispose()


def main(argv: list[str] | None = None) -> int:
    """Synchronous entry for the command line."""
    load_dotenv(_PROJECT_ROOT / ".env")
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(main_async(args))
    except KeyboardInterrupt:
        return 130


__all__ = ["build_parser", "build_registry", "main"]
