"""Tests for lenient JSON reading and atomic writes."""

import json
from pathlib import Path

import pytest

from exthost.utils.jsonc import load_file, loads_lenient, write_json_atomic


class TestLoadsLenient:
    def test_trailing_commas(self) -> None:
        assert loads_lenient('{"a": [1, 2,], "b": {"c": 1,},}') == {"a": [1, 2], "b": {"c": 1}}

    def test_comments(self) -> None:
        text = '{\n  // line\n  "a": 1, /* block */ "b": 2\n}'
        assert loads_lenient(text) == {"a": 1, "b": 2}

    def test_strings_preserved(self) -> None:
        text = '{"url": "https://x//y", "s": "a,}", "q": "say \\"hi\\","}'
        assert loads_lenient(text) == {"url": "https://x//y", "s": "a,}", "q": 'say "hi",'}

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            loads_lenient("{not json")


class TestWriteAtomic:
    def test_write_and_read(self, tmp_path: Path) -> None:
        path = tmp_path / "sub" / "data.json"
        write_json_atomic(path, {"b": 1, "a": 2})
        assert json.loads(path.read_text(encoding="utf-8")) == {"b": 1, "a": 2}
        assert load_file(path) == {"b": 1, "a": 2}
        assert not path.with_name("data.json.tmp").exists()
