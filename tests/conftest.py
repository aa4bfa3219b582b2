"""Shared fixtures: in-memory tarballs, a fake package manager and a registry transport."""

import io
import json
import stat
import tarfile
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest


def make_tarball(files: dict[str, str | bytes], prefix: str = "package") -> bytes:
    """gzip tar with every file under a single top-level folder, like npm pack output."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, content in files.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(f"{prefix}/{name}")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def package_files(
    name: str,
    version: str,
    engine: str = "^0.0.1",
    dependencies: dict[str, str] | None = None,
    main_source: str = "def activate(context):\n    return {'name': context.extension_id}\n",
    **extra: Any,
) -> dict[str, str]:
    manifest: dict[str, Any] = {"name": name, "version": version, "engines": {"coc": engine}}
    if dependencies:
        manifest["dependencies"] = dependencies
    manifest.update(extra)
    return {"package.json": json.dumps(manifest), "index.py": main_source}


def registry_document(
    name: str, versions: dict[str, str], engine: str | None = "^0.0.1", base: str = "https://example"
) -> dict[str, Any]:
    """npm registry document; versions maps version -> tarball file name."""
    docs: dict[str, Any] = {}
    for version, filename in versions.items():
        entry: dict[str, Any] = {"version": version, "dist": {"tarball": f"{base}/{filename}"}}
        if engine is not None:
            entry["engines"] = {"coc": engine}
        docs[version] = entry
    latest = list(versions)[-1]
    return {"name": name, "dist-tags": {"latest": latest}, "versions": docs}


@pytest.fixture
def make_client() -> Callable[[dict[str, Any]], httpx.AsyncClient]:
    """Build an AsyncClient serving url -> (dict as JSON | bytes | httpx.Response)."""

    def factory(routes: dict[str, Any]) -> httpx.AsyncClient:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            requested.append(url)
            body = routes.get(url)
            if body is None:
                return httpx.Response(404, json={"error": "Not found"})
            if isinstance(body, httpx.Response):
                return body
            if isinstance(body, (bytes, bytearray)):
                return httpx.Response(
                    200,
                    content=bytes(body),
                    headers={"content-type": "application/octet-stream"},
                )
            return httpx.Response(200, json=body)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client.requested = requested  # type: ignore[attr-defined]
        return client

    return factory


@pytest.fixture
def fake_npm(tmp_path: Path) -> Callable[[int], Path]:
    """Executable standing in for npm: prints two lines, writes node_modules/, exits with code."""

    def factory(exit_code: int = 0) -> Path:
        script = tmp_path / "bin" / "npm"
        script.parent.mkdir(parents=True, exist_ok=True)
        script.write_text(
            "#!/bin/sh\n"
            'echo "added 1 package"\n'
            'echo "audited 1 package"\n'
            "mkdir -p node_modules/dep\n"
            'echo "install args: $*" > node_modules/dep/args.txt\n'
            f'[ {exit_code} -ne 0 ] && echo "npm ERR! failed" >&2\n'
            f"exit {exit_code}\n",
            encoding="utf-8",
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return factory
