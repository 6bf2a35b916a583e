"""Error taxonomy for the query classification pipeline."""

from __future__ import annotations

import asyncio


class SearchTypeError(Exception):
    """Base class for every error raised by searchtype."""


class ConfigValidationError(SearchTypeError):
    def __init__(self, problems: list[str]):
        self.problems = problems
        self.message = "Invalid configuration: " + "; ".join(problems)
        super().__init__(self.message)


class TransportFailure(SearchTypeError):
    """Network or timeout error that survived the retry budget."""

    def __init__(self, url: str, cause: Exception):
        self.url = url
        self.message = f"Request to {url} failed: {cause!r}"
        super().__init__(self.message)


class BadResponseStatus(SearchTypeError):
    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        self.message = f"Bad response status {status}, answer {body[:500]!r}"
        super().__init__(self.message)


class BadResponseBody(SearchTypeError):
    """The service answered 2xx but reported an application-level error."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.reason = message
        self.message = f"Service error code {code}: {message}"
        super().__init__(self.message)


class DecodeError(SearchTypeError):
    def __init__(self, message: str | None = None):
        self.message = f"Decode failed: {message}" if message else "Decode failed"
        super().__init__(self.message)


class EmptyResponse(SearchTypeError):
    def __init__(self, message: str | None = None):
        self.message = message or "Empty response"
        super().__init__(self.message)


class SeparatorCollision(SearchTypeError):
    def __init__(self, value: str, delimiter: str):
        self.value = value
        self.delimiter = delimiter
        self.message = f"Response {value!r} contains csv separator {delimiter!r}"
        super().__init__(self.message)


class UnknownCategory(SearchTypeError):
    def __init__(self, text: str):
        self.text = text
        self.message = f"Query {text!r} has an unknown category"
        super().__init__(self.message)


class PipelineAborted(SearchTypeError):
    """Raised at a suspension point once shutdown has been requested."""

    def __init__(self, message: str | None = None):
        self.message = message or "Pipeline aborted"
        super().__init__(self.message)


class ChannelClosed(SearchTypeError):
    pass


class SinkCloseError(SearchTypeError):
    def __init__(self, errors: list[Exception]):
        self.errors = errors
        self.message = "Failed to flush/close outputs: " + "; ".join(
            str(e) for e in errors
        )
        super().__init__(self.message)


class BadColumnCount(SearchTypeError):
    def __init__(self, count: int, line: int):
        self.count = count
        self.line = line
        self.message = f"Expected 2 columns, got {count} on line {line}"
        super().__init__(self.message)


class EmptyCards(SearchTypeError):
    def __init__(self, text: str | None = None):
        self.message = (
            f"No cards returned for {text!r}" if text else "No cards returned"
        )
        super().__init__(self.message)


class PresetNotOnBucket(SearchTypeError):
    def __init__(self, presets: list[str]):
        self.presets = presets
        self.message = f"Preset {presets} is not on the bucket"
        super().__init__(self.message)


def leaf_errors(exc: BaseException) -> list[BaseException]:
    """Flatten (nested) exception groups into their leaf exceptions."""
    if isinstance(exc, BaseExceptionGroup):
        leaves: list[BaseException] = []
        for inner in exc.exceptions:
            leaves.extend(leaf_errors(inner))
        return leaves
    return [exc]


def is_cancellation(exc: BaseException) -> bool:
    return isinstance(exc, PipelineAborted | asyncio.CancelledError)


def collapse(exc: BaseException) -> BaseException:
    """Pick the error to surface out of a task group failure.

    The first root cause wins. Other root causes are attached to it as
    notes. If every leaf is a cancellation, a ``PipelineAborted`` is
    returned.
    """
    leaves = leaf_errors(exc)
    roots = [e for e in leaves if not is_cancellation(e)]
    if not roots:
        for leaf in leaves:
            if isinstance(leaf, PipelineAborted):
                return leaf
        return PipelineAborted()
    first = roots[0]
    for sibling in roots[1:]:
        first.add_note(f"also failed: {sibling!r}")
    return first
