"""Classify exact-match responses by the shape of their catalog value.

The ``catalog_value`` of a response is a URL query string such as
``preset=123&_st4=abc``. Semicolons may appear inside values, so they are
escaped before parsing and never act as a parameter separator.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from urllib.parse import unquote_plus

from pydantic import ValidationError

from searchtype.errors import DecodeError
from searchtype.models import ResponseModel

PRESET_PARAM = "preset"
TOKEN_PATTERN = re.compile(r"_st\d+")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class Category(enum.StrEnum):
    PRESET = "Preset"
    EXTEND_SEARCH = "ExtendSearch"
    MERGER = "Merger"
    UNKNOWN = "Unknown"

    @classmethod
    def persisted(cls) -> tuple[Category, ...]:
        """Categories that own an output directory."""
        return (cls.PRESET, cls.EXTEND_SEARCH, cls.MERGER)

    @classmethod
    def detect(cls, has_preset: bool, has_token: bool) -> Category:
        if has_preset and has_token:
            return cls.EXTEND_SEARCH
        if has_preset:
            return cls.PRESET
        if has_token:
            return cls.MERGER
        return cls.UNKNOWN


class Metadata(ResponseModel):
    name: str = ""
    catalog_value: str = ""


class MatchResponse(ResponseModel):
    metadata: Metadata = Metadata()


@dataclass(frozen=True)
class ClassificationRecord:
    text: str
    category: Category
    filter_value: str
    preset_ids: list[str] = field(default_factory=list)


def parse_params(query: str) -> dict[str, list[str]]:
    """Parse an ``&``-separated query string, keeping repeated keys in order.

    Raises :class:`DecodeError` on a malformed percent escape. Escapes
    that are well formed but not UTF-8 are kept as surrogates, so the
    original bytes come back with ``errors="surrogateescape"``.
    """
    params: dict[str, list[str]] = {}
    for part in query.split("&"):
        if not part:
            continue
        if _BAD_ESCAPE.search(part):
            raise DecodeError(f"invalid escape in {part!r}")
        key, _, value = part.partition("=")
        key = unquote_plus(key, errors="surrogateescape")
        value = unquote_plus(value, errors="surrogateescape")
        params.setdefault(key, []).append(value)
    return params


def classify(body: bytes) -> ClassificationRecord:
    """Map one response body to a :class:`ClassificationRecord`."""
    try:
        response = MatchResponse.model_validate_json(body)
    except ValidationError as exc:
        raise DecodeError(f"bad response envelope: {exc.errors()[0]['msg']}") from exc

    catalog_value = response.metadata.catalog_value
    params = parse_params(catalog_value.replace(";", "%3B"))

    has_preset = PRESET_PARAM in params
    has_token = any(TOKEN_PATTERN.search(key) for key in params)

    return ClassificationRecord(
        text=response.metadata.name,
        category=Category.detect(has_preset, has_token),
        filter_value=catalog_value,
        preset_ids=list(params.get(PRESET_PARAM, [])),
    )
