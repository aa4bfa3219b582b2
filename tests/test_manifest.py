"""Tests for PackageManifest parsing and directory checks."""

import json
from pathlib import Path

import pytest

from exthost.errors import IncompatibleHostError, InvalidManifestError
from exthost.extensions.manifest import check_directory, load_package_json, parse_manifest


def _write(folder: Path, data: dict, main: str | None = "index.py") -> Path:
    folder.mkdir(parents=True, exist_ok=True)
    (folder / "package.json").write_text(json.dumps(data), encoding="utf-8")
    if main:
        (folder / main).write_text("def activate(context):\n    pass\n", encoding="utf-8")
    return folder


class TestParseManifest:
    def test_aliases_and_extra_keys(self) -> None:
        manifest = parse_manifest(
            {
                "name": "demo",
                "engines": {"coc": "^0.0.80"},
                "activationEvents": ["onLanguage:go"],
                "contributes": {
                    "rootPatterns": [{"filetype": "go", "patterns": ["go.mod"]}],
                    "commands": [{"command": "demo.run", "title": "Run demo"}],
                    "configuration": {
                        "properties": {
                            "demo.enable": {"type": "boolean", "default": True},
                            "demo.path": {"type": "string"},
                        }
                    },
                },
                "publisher": "someone",
            }
        )
        assert manifest.activation_events == ["onLanguage:go"]
        assert manifest.engine == "^0.0.80"
        assert manifest.contributes.root_patterns[0].patterns == ["go.mod"]
        assert manifest.contributes.commands[0].title == "Run demo"
        assert manifest.configuration_defaults() == {"demo.enable": True}
        assert manifest.model_extra["publisher"] == "someone"

    @pytest.mark.parametrize(
        "data",
        [
            {"engines": {"coc": "*"}},
            {"name": "demo"},
            {"name": "demo", "engines": {}},
            ["not", "an", "object"],
        ],
    )
    def test_name_and_engines_required(self, data: object) -> None:
        with pytest.raises(InvalidManifestError):
            parse_manifest(data)

    def test_vscode_engine_has_no_host_range(self) -> None:
        manifest = parse_manifest({"name": "demo", "engines": {"vscode": "^1.50.0"}})
        assert manifest.engine is None


class TestLoadPackageJson:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidManifestError):
            load_package_json(tmp_path)

    def test_bad_json(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text("{name:", encoding="utf-8")
        with pytest.raises(InvalidManifestError):
            load_package_json(tmp_path)

    def test_tolerates_comments(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text(
            '{\n  // comment\n  "name": "demo",\n  "engines": {"coc": "*"},\n}',
            encoding="utf-8",
        )
        assert load_package_json(tmp_path).name == "demo"


class TestCheckDirectory:
    def test_valid(self, tmp_path: Path) -> None:
        folder = _write(tmp_path / "demo", {"name": "demo", "engines": {"coc": "^0.0.50"}, "main": "index.py"})
        assert check_directory(folder, "0.0.82").name == "demo"

    def test_missing_main(self, tmp_path: Path) -> None:
        folder = _write(
            tmp_path / "demo",
            {"name": "demo", "engines": {"coc": "*"}, "main": "lib/index.py"},
            main=None,
        )
        with pytest.raises(InvalidManifestError, match="main file"):
            check_directory(folder, "0.0.82")

    def test_foreign_engine(self, tmp_path: Path) -> None:
        folder = _write(tmp_path / "demo", {"name": "demo", "engines": {"node": ">=14"}})
        with pytest.raises(InvalidManifestError):
            check_directory(folder, "0.0.82")

    def test_host_too_old(self, tmp_path: Path) -> None:
        folder = _write(tmp_path / "demo", {"name": "demo", "engines": {"coc": "^0.1.0"}})
        with pytest.raises(IncompatibleHostError):
            check_directory(folder, "0.0.82")
