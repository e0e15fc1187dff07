"""Error types raised or returned by the JP-CLINS conversion core."""
from typing import Iterable, List


class JpClinsError(Exception):
    """Base class for conversion and serialization errors."""


class ValidationFailure(JpClinsError):
    """
    One or more field-level problems found in an input document.

    Returned inside a ConversionResult rather than raised by the transformers,
    but it is an exception so callers may raise it when that suits them.
    """

    def __init__(self, messages: Iterable[str]):
        self.messages: List[str] = list(messages)
        if not self.messages:
            raise ValueError("ValidationFailure requires at least one message")
        super().__init__("; ".join(self.messages))


class UnsupportedFormatError(JpClinsError, ValueError):
    """Requested output format is not json or xml."""

    def __init__(self, fmt: str):
        self.format = fmt
        super().__init__(f"Unsupported format: {fmt!r}. Supported formats: json, xml")


class SerializationFailure(JpClinsError, RuntimeError):
    """A Bundle could not be rendered to the requested format."""
