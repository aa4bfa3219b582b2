"""Centralized logging configuration for the extension host."""

import logging
import logging.handlers
from pathlib import Path
from typing import Any


def _file_handler(base_dir: Path, cfg: dict[str, Any], level: int) -> logging.Handler:
    log_path = base_dir / cfg.get("file", "logs/exthost.log")
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=int(cfg.get("max_bytes", 10 * 1024 * 1024)),
        backupCount=int(cfg.get("backup_count", 3)),
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def setup_logging(base_dir: Path, settings: dict[str, Any]) -> None:
    """Configure the root logger: rotating file under base_dir, console when log_to_console."""
    cfg = settings.get("logging", {})
    level = getattr(logging, str(cfg.get("level", "INFO")).upper(), logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers[:]:
        root.removeHandler(h)
    handlers = [_file_handler(base_dir, cfg, level)]
    if cfg.get("log_to_console", False):
        console = logging.StreamHandler()
        console.setLevel(level)
        handlers.append(console)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
