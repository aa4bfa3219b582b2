"""Installer: resolve an identifier to a tarball, download it, install its dependencies, swap it into place."""

import asyncio
import json
import logging
import re
import shutil
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Callable

import httpx

from exthost.errors import (
    HttpStatusError,
    IncompatibleHostError,
    InvalidManifestError,
    NotCocExtensionError,
    NotFoundError,
    PackageManagerNotFoundError,
    SubprocessFailureError,
    UnsupportedSourceError,
)
from exthost.events import Emitter
from exthost.packages.dependencies import set_dependency
from exthost.packages.download import download
from exthost.utils.jsonc import load_file
from exthost.utils.versions import engine_range, gte, satisfies

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "https://registry.npmjs.org/"
HOST_PACKAGE = "coc.nvim"
ENGINE_KEY = "coc"
METADATA_TIMEOUT = 10.0

# Build-time packages that never need installing next to an extension.
_EXCLUDED_DEPENDENCIES = frozenset({HOST_PACKAGE, "esbuild", "webpack"})
_IDENTIFIER = re.compile(r"^(.+)@([^/]+)$")


@dataclass(frozen=True)
class InstallInfo:
    name: str
    version: str
    tarball_url: str
    required_engine: str


@dataclass(frozen=True)
class InstallMessage:
    text: str
    is_progress: bool = False


def registry_url(scope: str = HOST_PACKAGE, home: Path | None = None) -> str:
    """Registry base from ~/.npmrc: "<scope>:registry" wins over "registry". Always ends with "/"."""
    result = DEFAULT_REGISTRY
    npmrc = (home or Path.home()) / ".npmrc"
    if npmrc.exists():
        try:
            values: dict[str, str] = {}
            for line in npmrc.read_text(encoding="utf-8").splitlines():
                if "=" in line:
                    key, _, value = line.partition("=")
                    values[key.strip()] = value.strip()
            if values.get(f"{scope}:registry"):
                result = values[f"{scope}:registry"]
            elif values.get("registry"):
                result = values["registry"]
        except OSError as e:
            logger.error("Error on read %s: %s", npmrc, e)
    return result if result.endswith("/") else result + "/"


def is_npm_command(exe_path: str) -> bool:
    return Path(exe_path).name in ("npm", "npm.CMD", "npm.cmd")


def is_yarn(exe_path: str) -> bool:
    return Path(exe_path).name in ("yarn", "yarn.CMD", "yarnpkg", "yarnpkg.CMD")


def get_install_arguments(exe_path: str, url: str) -> list[str]:
    """Arguments for the secondary dependency install inside the unpacked package."""
    if url.startswith("https://github.com"):
        args = ["install"]
    else:
        args = ["install", "--ignore-scripts", "--no-lockfile", "--production"]
    if is_npm_command(exe_path):
        args += ["--legacy-peer-deps", "--no-global"]
    if is_yarn(exe_path):
        args.append("--ignore-engines")
    return args


def get_dependencies(content: str) -> dict[str, str]:
    """Runtime dependencies of a package.json text, minus the host, bundlers and @types/*."""
    try:
        deps = json.loads(content).get("dependencies") or {}
    except (ValueError, AttributeError):
        return {}
    if not isinstance(deps, dict):
        return {}
    return {
        k: v
        for k, v in deps.items()
        if k not in _EXCLUDED_DEPENDENCIES and not k.startswith("@types/")
    }


class Installer:
    """Installs one identifier (name, name@version or github URL) into modules_dir.

    The dependency manifest lives at root/package.json; installed packages go
    to modules_dir/<name> (modules_dir defaults to root).
    """

    def __init__(
        self,
        root: Path,
        npm: str,
        identifier: str,
        host_version: str,
        *,
        modules_dir: Path | None = None,
        registry_scope: str = HOST_PACKAGE,
        timeout: float = METADATA_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        home: Path | None = None,
    ) -> None:
        self.root = root
        self.npm = npm
        self.identifier = identifier
        self.host_version = host_version
        self.modules_dir = modules_dir or root
        self.manifest_path = root / "package.json"
        self._registry_scope = registry_scope
        self._timeout = timeout
        self._client = client
        self._home = home
        self.on_message: Emitter[InstallMessage] = Emitter()
        self.name: str | None = None
        self.version: str | None = None
        self._url: str | None = None
        if re.match(r"^https?:", identifier):
            self._url = identifier
        else:
            match = _IDENTIFIER.match(identifier)
            if match:
                self.name, self.version = match.group(1), match.group(2)
            else:
                self.name = identifier

    @property
    def info(self) -> dict[str, str | None]:
        return {"name": self.name, "version": self.version}

    def _log(self, text: str, is_progress: bool = False) -> None:
        logger.info("%s", text)
        self.on_message.fire(InstallMessage(text, is_progress))

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(follow_redirects=True) as client:
            yield client

    async def _get_json(self, url: str) -> dict[str, Any]:
        async with self._http() as client:
            try:
                response = await client.get(url, timeout=self._timeout)
            except httpx.HTTPError as e:
                raise NotFoundError(f"Unable to fetch {url}: {e}") from e
        if response.status_code == 404:
            raise NotFoundError(f"{url} not found")
        if not response.is_success:
            raise HttpStatusError(url, response.status_code)
        try:
            data = response.json()
        except ValueError as e:
            raise InvalidManifestError(f"Invalid JSON from {url}: {e}") from e
        if not isinstance(data, dict):
            raise InvalidManifestError(f"Expected a JSON object from {url}")
        return data

    async def install(self) -> str:
        """Resolve, check engine compatibility, install. Returns the package name."""
        self._log(f"Using npm from: {self.npm}")
        info = await self.get_info()
        logger.info("Fetched info of %s: %s", self.identifier, info)
        self._check_engine(info)
        await self.do_install(info)
        return info.name

    async def update(self, url: str | None = None) -> Path | None:
        """Reinstall when the registry has something newer. None when skipped or current."""
        self._url = url
        if self.name is None:
            raise InvalidManifestError(f"Cannot update {self.identifier} without a package name")
        folder = self.modules_dir / self.name
        if folder.is_symlink():
            self._log("Skipped update for symbol link")
            return None
        version: str | None = None
        package_json = folder / "package.json"
        if package_json.exists():
            try:
                version = load_file(package_json).get("version")
            except (ValueError, OSError, AttributeError) as e:
                logger.warning("Unable to read %s: %s", package_json, e)
        self._log(f"Using npm from: {self.npm}")
        info = await self.get_info()
        if version and info.version and gte(version, info.version):
            self._log(f"Current version {version} is up to date.")
            return None
        self._check_engine(info)
        await self.do_install(info)
        self._log(f"Updated to v{info.version}")
        return self.modules_dir / info.name

    def _check_engine(self, info: InstallInfo) -> None:
        required = engine_range(info.required_engine)
        if required and not satisfies(self.host_version, required):
            raise IncompatibleHostError(
                f"{info.name} {info.version} requires host version {required}, "
                f"current is {self.host_version}, please upgrade."
            )

    async def get_info(self) -> InstallInfo:
        if self._url:
            return await self.get_info_from_uri()
        registry = registry_url(self._registry_scope, self._home)
        self._log(f"Get info from {registry}")
        res = await self._get_json(registry + str(self.name))
        version = self.version or (res.get("dist-tags") or {}).get("latest")
        obj = (res.get("versions") or {}).get(version) if version else None
        if not obj:
            raise NotFoundError(f"{self.identifier} doesn't exists in {registry}.")
        if not self.version:
            self.version = version
        required = (obj.get("engines") or {}).get(ENGINE_KEY)
        if not required:
            raise NotCocExtensionError(
                f'{self.identifier} is not valid extension, "engines" field with '
                f"{ENGINE_KEY} property required."
            )
        tarball = (obj.get("dist") or {}).get("tarball")
        if not tarball:
            raise NotFoundError(f"{self.identifier} has no tarball in {registry}.")
        return InstallInfo(
            name=res.get("name") or str(self.name),
            version=obj.get("version") or str(version),
            tarball_url=tarball,
            required_engine=required,
        )

    async def get_info_from_uri(self) -> InstallInfo:
        url = str(self._url)
        if not url.startswith("https://github.com"):
            raise UnsupportedSourceError(f'"{url}" is not supported, only github.com is supported')
        url = url.rstrip("/")
        branch = "master"
        if "@" in url:
            url, _, branch = url.partition("@")
        file_url = url.replace("github.com", "raw.githubusercontent.com", 1) + f"/{branch}/package.json"
        self._log(f"Get info from {file_url}")
        obj = await self._get_json(file_url)
        required = (obj.get("engines") or {}).get(ENGINE_KEY)
        if not required:
            raise NotCocExtensionError(
                f'{url} is not valid extension, "engines" field with {ENGINE_KEY} property required.'
            )
        if not obj.get("name"):
            raise InvalidManifestError(f"package.json of {url} has no name")
        self.name = obj["name"]
        return InstallInfo(
            name=obj["name"],
            version=obj.get("version") or "",
            tarball_url=f"{url}/archive/{branch}.tar.gz",
            required_engine=required,
        )

    async def do_install(self, info: InstallInfo) -> bool:
        """Download into a temp dir, install dependencies, move into place, pin in the manifest."""
        folder = self.modules_dir / info.name
        if folder.is_symlink():
            return False
        tmp = Path(tempfile.mkdtemp(prefix=f"{info.name.replace('/', '-')}-"))
        try:
            self._log(f"Downloading from {info.tarball_url}")
            await download(
                info.tarball_url,
                tmp,
                extract="untar",
                on_progress=lambda p: self._log(f"Download progress {p}%", True),
                client=self._client,
            )
            self._log(f"Extension download at {tmp}")
            content = (tmp / "package.json").read_text(encoding="utf-8")
            if get_dependencies(content):
                await self._install_dependencies(tmp, info.tarball_url)
            if folder.is_dir():
                shutil.rmtree(folder)
            elif folder.exists():
                folder.unlink()
            folder.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(tmp), str(folder))
        except BaseException:
            shutil.rmtree(tmp, ignore_errors=True)
            raise
        set_dependency(self.manifest_path, info.name, self._url or f">={info.version}")
        self._log(f"Update package.json at {self.manifest_path}")
        self._log(f"Installed extension {info.name}@{info.version} at {folder}")
        return True

    async def _install_dependencies(self, cwd: Path, url: str) -> None:
        args = get_install_arguments(self.npm, url)
        self._log(f"Installing dependencies by: {self.npm} {' '.join(args)}.")
        try:
            proc = await asyncio.create_subprocess_exec(
                self.npm,
                *args,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise PackageManagerNotFoundError(f"Unable to run {self.npm}: {e}") from e
        assert proc.stdout is not None and proc.stderr is not None
        stderr_task = asyncio.ensure_future(proc.stderr.read())
        async for raw in proc.stdout:
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            self._log(f"[npm] {line}", True)
        err = (await stderr_task).decode("utf-8", errors="replace")
        code = await proc.wait()
        if code:
            if err:
                self._log(err)
            raise SubprocessFailureError(self.npm, code, err)


def create_installer_factory(
    npm: str,
    root: Path,
    host_version: str,
    **kwargs: Any,
) -> Callable[[str], Installer]:
    """Factory bound to one root; extra kwargs go to every Installer."""

    def factory(identifier: str) -> Installer:
        return Installer(root, npm, identifier, host_version, **kwargs)

    return factory
