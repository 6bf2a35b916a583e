"""Configuration for the searchtype commands.

Values are resolved in this order, later sources winning:

1. dataclass defaults
2. an optional TOML file (``--config`` or ``SEARCHTYPE_CONFIG``)
3. environment variables
4. command-line flags

TOML layout::

    [classify]
    url = "https://match.example.com/search?lang=ru"
    rps = 5

    [visualize]
    bucket_url = "https://bucket.example.com/cards"
    visualizer_url = "https://viewer.example.com/"

    [logging]
    period = 3.0
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from searchtype.errors import ConfigValidationError
from searchtype.saver import UnknownPolicy

CONFIG_ENV = "SEARCHTYPE_CONFIG"
CONCURRENCY_ENV = "SEARCHTYPE_CONCURRENCY_LIMIT"

_ENV_VARS: dict[str, str] = {
    "url": "SEARCHTYPE_URL",
    "bucket_url": "SEARCHTYPE_BUCKET_URL",
    "visualizer_url": "SEARCHTYPE_VISUALIZER_URL",
    "rps": "SEARCHTYPE_RPS",
    "retries": "SEARCHTYPE_RETRY",
    "timeout": "SEARCHTYPE_TIMEOUT",
    "concurrency": CONCURRENCY_ENV,
    "log_period": "SEARCHTYPE_LOG_PERIOD",
}


def _check_url(value: str, name: str, problems: list[str]) -> None:
    parts = urlsplit(value)
    if not parts.scheme:
        problems.append(f"please set up a scheme for {name}")
    if not parts.netloc:
        problems.append(f"please set up a host for {name}")


@dataclass(frozen=True)
class _RequestSettings:
    rps: float = 1.0
    retries: int = 0
    timeout: float = 3.0
    concurrency: int = 100
    log_period: float = 3.0

    def _validate_requests(self, problems: list[str]) -> None:
        if self.rps <= 0:
            problems.append("requests per second must be greater than zero")
        if self.timeout <= 0:
            problems.append("timeout per request must be greater than zero")
        if self.retries < 0:
            problems.append("retry count cannot be negative")
        if self.concurrency <= 0:
            problems.append(f"{CONCURRENCY_ENV} must be greater than zero")
        if self.log_period <= 0:
            problems.append("logger period must be greater than zero")


@dataclass(frozen=True)
class Config(_RequestSettings):
    queries_path: str = ""
    url: str = ""
    field_delimiter: str = "\t"
    preset_delimiter: str = ","
    unknown_policy: UnknownPolicy = UnknownPolicy.SKIP
    output_dir: str = ""

    @property
    def resolved_output_dir(self) -> Path:
        """Category directories go next to the queries file unless overridden."""
        if self.output_dir:
            return Path(self.output_dir)
        return Path(self.queries_path).parent

    def validate(self) -> Config:
        problems: list[str] = []
        if not Path(self.queries_path).is_file():
            problems.append(f"queries file not found: {self.queries_path!r}")
        _check_url(self.url, "url", problems)
        self._validate_requests(problems)
        if not self.field_delimiter:
            problems.append("csv separator cannot be empty")
        if not self.preset_delimiter:
            problems.append("presets separator cannot be empty")
        if problems:
            raise ConfigValidationError(problems)
        return self


@dataclass(frozen=True)
class VisualizerConfig(_RequestSettings):
    queries_path: str = ""
    bucket_url: str = ""
    visualizer_url: str = ""
    results_path: str = ""
    version_name: str = ""
    csv_separator: str = "\t"
    screenshot_width: int = 2000
    screenshot_height: int = 1500
    screenshot_timeout: float = 30.0
    pool_size: int = 10

    @property
    def resolved_results_path(self) -> Path:
        if self.results_path:
            return Path(self.results_path)
        return Path(self.queries_path).parent

    def validate(self) -> VisualizerConfig:
        problems: list[str] = []
        if not Path(self.queries_path).is_file():
            problems.append(f"queries file not found: {self.queries_path!r}")
        if not self.resolved_results_path.is_dir():
            problems.append(f"results path is not a directory: {self.results_path!r}")
        _check_url(self.bucket_url, "bucket url", problems)
        _check_url(self.visualizer_url, "visualizer url", problems)
        self._validate_requests(problems)
        if not self.version_name:
            problems.append("results version name is required")
        if len(self.csv_separator) != 1:
            problems.append("csv separator must be a single character")
        if self.screenshot_width <= 0 or self.screenshot_height <= 0:
            problems.append("screenshot size must be positive")
        if self.screenshot_timeout <= 0:
            problems.append("screenshot timeout must be greater than zero")
        if self.pool_size <= 0:
            problems.append("browser pool size must be greater than zero")
        if problems:
            raise ConfigValidationError(problems)
        return self


def _read_toml(path: str | None) -> dict[str, Any]:
    path = path or os.environ.get(CONFIG_ENV)
    if not path:
        return {}
    with open(Path(path).expanduser(), "rb") as f:
        return tomllib.load(f)


def _resolve[C: _RequestSettings](
    cls: type[C], section: dict[str, Any], data: dict[str, Any], overrides: dict[str, Any]
) -> C:
    names = {f.name for f in fields(cls)}
    values: dict[str, Any] = {}
    problems: list[str] = []

    def put(name: str, value: Any, source: str) -> None:
        """Store *value* cast to the type of the field default."""
        kind = type(getattr(cls, name))
        if isinstance(value, kind):
            values[name] = value
            return
        try:
            values[name] = kind(value)
        except (TypeError, ValueError):
            problems.append(f"invalid value {value!r} for {source}")

    for key, value in section.items():
        if key in names:
            put(key, value, f"{key} in the config file")

    log_section = data.get("logging", {})
    if "period" in log_section:
        put("log_period", log_section["period"], "period in the config file")

    for name, env in _ENV_VARS.items():
        raw = os.environ.get(env)
        if name in names and raw:
            put(name, raw, env)

    for name, value in overrides.items():
        if value is not None:
            put(name, value, name)

    if problems:
        raise ConfigValidationError(problems)
    return cls(**values)


def load_config(path: str | None = None, **overrides: Any) -> Config:
    """Resolve a :class:`Config` from file, environment and *overrides*.

    The result is not validated; call :meth:`Config.validate`.
    """
    data = _read_toml(path)
    return _resolve(Config, data.get("classify", {}), data, overrides)


def load_visualizer_config(path: str | None = None, **overrides: Any) -> VisualizerConfig:
    data = _read_toml(path)
    return _resolve(VisualizerConfig, data.get("visualize", {}), data, overrides)
