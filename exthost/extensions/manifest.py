"""Package manifest (package.json): Pydantic model, loader and directory check."""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from exthost.errors import IncompatibleHostError, InvalidManifestError
from exthost.utils.jsonc import load_file
from exthost.utils.versions import engine_range, satisfies

DEFAULT_MAIN = "index.py"
ENGINE_KEYS = ("coc", "vscode")


class CommandContribution(BaseModel):
    model_config = ConfigDict(extra="allow")

    command: str
    title: str = ""


class RootPatternContribution(BaseModel):
    model_config = ConfigDict(extra="allow")

    filetype: str
    patterns: list[str] = Field(default_factory=list)


class ConfigurationContribution(BaseModel):
    model_config = ConfigDict(extra="allow")

    properties: dict[str, Any] = Field(default_factory=dict)


class Contributes(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    configuration: ConfigurationContribution | None = None
    root_patterns: list[RootPatternContribution] = Field(
        default_factory=list, alias="rootPatterns"
    )
    commands: list[CommandContribution] = Field(default_factory=list)


class PackageManifest(BaseModel):
    """Immutable view of <extensionDir>/package.json. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    name: str
    engines: dict[str, Any]
    version: str = ""
    description: str = ""
    main: str | None = None
    activation_events: list[str] | None = Field(default=None, alias="activationEvents")
    contributes: Contributes | None = None

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be empty")
        return value

    @property
    def engine(self) -> str | None:
        """Host-engine range from engines.coc, if declared."""
        value = self.engines.get("coc")
        return value if isinstance(value, str) else None

    def configuration_defaults(self) -> dict[str, Any]:
        """key -> default for contributed configuration properties that declare one."""
        if self.contributes is None or self.contributes.configuration is None:
            return {}
        result: dict[str, Any] = {}
        for key, prop in self.contributes.configuration.properties.items():
            if isinstance(prop, dict) and prop.get("default") is not None:
                result[key] = prop["default"]
        return result


def parse_manifest(data: Any, source: str = "package.json") -> PackageManifest:
    if not isinstance(data, dict):
        raise InvalidManifestError(f"{source} must contain a JSON object")
    if not data.get("name") or not data.get("engines"):
        raise InvalidManifestError(f"can't find name & engines in {source}")
    try:
        return PackageManifest.model_validate(data)
    except ValidationError as e:
        raise InvalidManifestError(f"invalid {source}: {e}") from e


def load_package_json(directory: Path) -> PackageManifest:
    """Read and validate directory/package.json. Raises InvalidManifestError."""
    path = directory / "package.json"
    if not path.exists():
        raise InvalidManifestError(f"package.json not found in {directory}")
    try:
        data = load_file(path)
    except (ValueError, OSError) as e:
        raise InvalidManifestError(f"Unable to read {path}: {e}") from e
    return parse_manifest(data, str(path))


def check_directory(folder: Path, host_version: str) -> PackageManifest:
    """Validate that folder holds a loadable extension for this host version."""
    manifest = load_package_json(folder)
    if manifest.main and not (folder / manifest.main).exists():
        raise InvalidManifestError(
            f"main file {manifest.main} not found, you may need to build the project."
        )
    if not any(key in manifest.engines for key in ENGINE_KEYS):
        raise InvalidManifestError("Engines in package.json doesn't have coc or vscode")
    if manifest.engine is not None:
        required = engine_range(manifest.engine)
        if not satisfies(host_version, required):
            raise IncompatibleHostError(
                f"Please upgrade the host, {manifest.name} requires {manifest.engine}"
            )
    return manifest
