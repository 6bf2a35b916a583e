"""Partitioned sink writing one output directory per category.

Layout under ``output_dir``::

    <Category>/queries.csv     header + one "text<delim>query" row per record
    <Category>/list.presets    sorted preset ids, joined by the preset delimiter

The saver is the only owner of its files and is driven by a single
consumer, so it does no locking.
"""

from __future__ import annotations

import enum
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType
from typing import TextIO

from searchtype.channel import Channel
from searchtype.classifier import Category, ClassificationRecord, classify
from searchtype.errors import (
    EmptyResponse,
    SeparatorCollision,
    SinkCloseError,
    UnknownCategory,
)

logger = logging.getLogger(__name__)

QUERIES_FILE = "queries.csv"
PRESETS_FILE = "list.presets"


class UnknownPolicy(enum.StrEnum):
    SKIP = "skip"
    FAIL = "fail"


@dataclass
class _Ledger:
    writer: TextIO
    presets: set[str] = field(default_factory=set)


class Saver:
    def __init__(
        self,
        output_dir: str | Path,
        *,
        field_delimiter: str = "\t",
        preset_delimiter: str = ",",
        unknown_policy: UnknownPolicy = UnknownPolicy.SKIP,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.field_delimiter = field_delimiter
        self.preset_delimiter = preset_delimiter
        self.unknown_policy = UnknownPolicy(unknown_policy)
        self.saved: Counter[Category] = Counter()
        self.skipped = 0
        self._ledgers: dict[Category, _Ledger] = {}
        self._closed = False

        try:
            for category in Category.persisted():
                self._ledgers[category] = _Ledger(writer=self._open_queries(category))
        except BaseException:
            self._close_writers()
            raise

    def _category_dir(self, category: Category) -> Path:
        return self.output_dir / category.value

    def _open_queries(self, category: Category) -> TextIO:
        directory = self._category_dir(category)
        directory.mkdir(parents=True, exist_ok=True)
        # presets of an earlier run must not outlive its queries
        (directory / PRESETS_FILE).unlink(missing_ok=True)
        f = open(directory / QUERIES_FILE, "w", encoding="utf-8", newline="")  # noqa: SIM115
        try:
            f.write(f"text{self.field_delimiter}query\n")
        except BaseException:
            f.close()
            raise
        return f

    # ---- per-record ----

    def validate(self, record: ClassificationRecord) -> None:
        if not record.text or not record.filter_value:
            raise EmptyResponse(f"Empty name or catalog value in {record!r}")
        for value in (record.text, record.filter_value):
            if self.field_delimiter in value:
                raise SeparatorCollision(value, self.field_delimiter)

    def save(self, record: ClassificationRecord) -> bool:
        """Persist one record. Returns ``False`` if it was skipped."""
        self.validate(record)

        if record.category is Category.UNKNOWN:
            if self.unknown_policy is UnknownPolicy.FAIL:
                raise UnknownCategory(record.text)
            logger.info("Query %r has been skipped", record.text)
            self.skipped += 1
            return False

        ledger = self._ledgers[record.category]
        ledger.writer.write(
            f"{record.text}{self.field_delimiter}{record.filter_value}\n"
        )
        ledger.presets.update(record.preset_ids)
        self.saved[record.category] += 1
        logger.info("%r query has finished", record.text)
        return True

    def sorted_presets(self, category: Category) -> list[str]:
        return sorted(self._ledgers[category].presets)

    # ---- stream ----

    async def run(self, bodies: Channel[bytes]) -> None:
        """Classify and save every body until the channel closes.

        Preset lists are only written after a clean end of stream. Rows
        written before a failure are kept.
        """
        error: BaseException | None = None
        try:
            async for body in bodies:
                self.save(classify(body))
            self.write_presets()
        except BaseException as exc:
            error = exc
            raise
        finally:
            close_errors = self._close_writers()
            logger.info("Saver has finished")
            if close_errors:
                if error is None:
                    raise SinkCloseError(close_errors)
                for close_error in close_errors:
                    error.add_note(f"while closing outputs: {close_error!r}")

    def write_presets(self) -> None:
        errors: list[Exception] = []
        for category in self._ledgers:
            path = self._category_dir(category) / PRESETS_FILE
            try:
                with open(
                    path, "w", encoding="utf-8", errors="surrogateescape", newline=""
                ) as f:
                    f.write(self.preset_delimiter.join(self.sorted_presets(category)))
            except OSError as exc:
                errors.append(exc)
        if errors:
            raise SinkCloseError(errors)

    # ---- lifecycle ----

    def _close_writers(self) -> list[Exception]:
        errors: list[Exception] = []
        for ledger in self._ledgers.values():
            if ledger.writer.closed:
                continue
            try:
                ledger.writer.flush()
            except OSError as exc:
                errors.append(exc)
            try:
                ledger.writer.close()
            except OSError as exc:
                errors.append(exc)
        self._closed = True
        return errors

    def close(self) -> None:
        if self._closed:
            return
        errors = self._close_writers()
        if errors:
            raise SinkCloseError(errors)

    def __enter__(self) -> Saver:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
