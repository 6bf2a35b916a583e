from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ValidationError

from searchtype.errors import DecodeError, EmptyCards
from searchtype.models import ResponseModel

RESULTS_DIR = "visualizer_results"
CARDS_SUFFIX = "_cards.ids"


class Product(BaseModel):
    id: float


class CardsData(ResponseModel):
    products: list[Product] = []


class CardsResponse(ResponseModel):
    data: CardsData = CardsData()


def parse_cards(body: bytes, text: str | None = None) -> list[str]:
    """Return the product ids of a bucket response, in order."""
    try:
        response = CardsResponse.model_validate_json(body)
    except ValidationError as exc:
        raise DecodeError(f"bad cards response: {body[:200]!r}") from exc
    if not response.data.products:
        raise EmptyCards(text)
    return [str(int(p.id)) for p in response.data.products]


def cards_prefix(results_path: Path, text: str, version_name: str) -> Path:
    """``<results>/visualizer_results/<text>/<version>``; creates the directory."""
    directory = results_path / RESULTS_DIR / text
    directory.mkdir(parents=True, exist_ok=True)
    return directory / version_name


def write_cards(prefix: Path, ids: list[str], delimiter: str = ",") -> str:
    joined = delimiter.join(ids)
    with open(f"{prefix}{CARDS_SUFFIX}", "w", encoding="utf-8") as f:
        f.write(joined)
    return joined
