"""Lenient JSON reading (comments, trailing commas) and atomic JSON writes."""

import json
import os
from pathlib import Path
from typing import Any

import json5


def loads_lenient(text: str) -> Any:
    """Parse JSON that may carry comments or trailing commas. Raises ValueError on bad input."""
    return json5.loads(text)


def load_file(path: Path) -> Any:
    return loads_lenient(path.read_text(encoding="utf-8"))


def write_json_atomic(path: Path, data: Any) -> None:
    """Write via temp file + replace so readers never see a partial document."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    os.replace(tmp, path)
