from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from searchtype.config import Config
from searchtype.shutdown import Shutdown

MATCH_URL = "https://match.test/exactmatch?lang=ru"


def match_body(name: str, catalog_value: str) -> bytes:
    """Body of a successful exact-match answer."""
    return json.dumps(
        {"metadata": {"name": name, "catalog_value": catalog_value}}
    ).encode()


@pytest.fixture()
def make_body() -> Callable[[str, str], bytes]:
    return match_body


@pytest.fixture()
def shutdown() -> Shutdown:
    return Shutdown()


@pytest.fixture()
def mock_client():
    """Factory for an ``httpx.AsyncClient`` backed by a handler function."""
    def _make(handler) -> httpx.AsyncClient:  # noqa: ANN001
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture()
def queries_file(tmp_path: Path):
    def _write(*queries: str) -> Path:
        path = tmp_path / "queries.txt"
        path.write_text("".join(f"{q}\n" for q in queries), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def make_config(tmp_path: Path):
    def _make(queries_path: Path, **overrides) -> Config:  # noqa: ANN003
        values = {
            "queries_path": str(queries_path),
            "url": MATCH_URL,
            "rps": 1000.0,
            "output_dir": str(tmp_path / "out"),
        }
        values.update(overrides)
        return Config(**values).validate()

    return _make
