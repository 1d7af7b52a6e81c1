"""Error types and error payload helpers."""

from __future__ import annotations

from typing import Dict, Optional


class QmRegionsError(Exception):
    """Base exception type for qmregions.

    Attributes
    ----------
    kind
        Stable error identifier.
    message
        Human-readable error message.
    details
        Optional detail payload for debugging.
    """

    kind = "error"

    def __init__(
        self,
        message: str,
        details: Optional[object] = None,
        kind: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.message = message
        self.details = details

    def to_result(self) -> Dict[str, object]:
        """Return a JSON-ready error payload.

        Returns
        -------
        dict
            JSON-ready error payload.
        """
        return error_result(self.kind, self.message, self.details)


class ParseError(QmRegionsError):
    """Malformed selection or command text.

    ``details`` holds the offending fragment and its column when known.
    """

    kind = "parse_error"


class NotFoundError(QmRegionsError):
    """A referenced atom or residue does not exist."""

    kind = "not_found"


class AmbiguousRangeError(QmRegionsError):
    """An id range cannot be resolved unambiguously."""

    kind = "ambiguous_range"


class InvalidCombinationError(QmRegionsError):
    """Options that cannot be used together, or a required option is missing."""

    kind = "invalid_combination"


class GeometryError(QmRegionsError):
    """A measurement was requested with an unsupported number of atoms."""

    kind = "geometry_error"


class StructureError(QmRegionsError):
    """Structure files that cannot be read or written."""

    kind = "format_error"


def error_result(kind: str, message: str, details: Optional[object] = None) -> Dict[str, object]:
    """Build an error payload.

    Parameters
    ----------
    kind
        Stable error identifier.
    message
        Human-readable summary.
    details
        Optional detail payload for logging or debugging.

    Returns
    -------
    dict
        JSON-ready error payload.
    """

    return {"ok": False, "error": {"kind": kind, "message": message, "details": details}}
