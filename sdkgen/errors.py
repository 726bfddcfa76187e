"""Exception hierarchy shared by the generation pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .process import ProcessResult


class SdkGenError(RuntimeError):
    """Base class for pipeline failures."""


class TransportError(SdkGenError):
    """Raised when a fetch fails or returns a non-200 status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmptyContentError(TransportError):
    """Raised when a fetch succeeds but returns no body."""


class DiffParseError(SdkGenError):
    """Raised when a ``diff --git`` line does not have the expected shape."""


class ConfigParseError(SdkGenError):
    """Raised when a configuration block or document cannot be used."""


class AllocationError(SdkGenError):
    """Raised when no free iteration or clone slot can be found."""


class ProcessExecutionError(SdkGenError):
    """Raised when an external command exits non-zero."""

    def __init__(self, message: str, result: "ProcessResult") -> None:
        super().__init__(message)
        self.result = result


__all__ = [
    "AllocationError",
    "ConfigParseError",
    "DiffParseError",
    "EmptyContentError",
    "ProcessExecutionError",
    "SdkGenError",
    "TransportError",
]
