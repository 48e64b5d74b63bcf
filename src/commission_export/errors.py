"""Exceptions raised by the commission export pipeline.

Every pipeline failure derives from :class:`ExportError` so callers can
catch the whole family at the request boundary.
"""

from __future__ import annotations

from typing import Optional


class ExportError(RuntimeError):
    """Base class for all commission export failures."""


class DatabaseConnectionError(ExportError):
    """Raised when the commission database cannot be opened."""


class QueryError(ExportError):
    """Raised when a listing, view or page query fails."""


class SheetWriteError(ExportError):
    """Raised when a sheet or delivered file cannot be written."""


class _ToolError(ExportError):
    def __init__(self, message: str, output: Optional[str] = None) -> None:
        self.output = output or ""
        if self.output:
            message = f"{message}\n{self.output}"
        super().__init__(message)


class ConversionError(_ToolError):
    """Raised when the CSV sheets cannot be combined into a workbook.

    ``output`` holds whatever the combiner printed, for diagnostics.
    """


class CompressionError(_ToolError):
    """Raised when the workbook directory cannot be bundled."""


class CleanupError(ExportError):
    """Raised when a run's working tree cannot be removed."""


class EmptyResultError(ExportError):
    """Raised when the requested owner has no shops."""


class ExportCancelled(ExportError):
    """Raised at a checkpoint after cancellation was requested."""


__all__ = [
    "CleanupError",
    "CompressionError",
    "ConversionError",
    "DatabaseConnectionError",
    "EmptyResultError",
    "ExportCancelled",
    "ExportError",
    "QueryError",
    "SheetWriteError",
]
