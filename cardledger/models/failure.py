"""
Error taxonomy shared by every storage mode.

Local storage and the remote transport raise the same exception types, so
code written against a card repository never branches on which one it has.

Failure kinds:
- NotFound: a card or checklist key is absent
- Validation: a malformed input record
- Transport: the remote side is unreachable, timed out, or answered garbage
- SchemaFailure: schema evolution failed; fatal at startup
- SeedEntry: one bundled checklist definition is malformed; collected, not raised
- Conflict: a checklist kept changing underneath a merge
"""

from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    TRANSPORT = "transport"
    SCHEMA_FAILURE = "schema_failure"
    SEED_ENTRY = "seed_entry"
    CONFLICT = "conflict"


class FailureDetail(BaseModel):
    """Serialized form of a known failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="Explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclasses fix the kind and the HTTP status used when the error
    crosses the API boundary.
    """

    kind: FailureKind = FailureKind.VALIDATION
    status_code: int = 400

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(message)

    def to_detail(self) -> FailureDetail:
        """Convert to the serialized failure shape."""
        return FailureDetail(kind=self.kind, message=self.message, detail=self.detail)


class NotFoundError(KnownError):
    """A card or checklist key does not exist."""

    kind = FailureKind.NOT_FOUND
    status_code = 404


class RecordValidationError(KnownError):
    """An input record is malformed."""

    kind = FailureKind.VALIDATION
    status_code = 422


class TransportError(KnownError):
    """The remote authority is unreachable, timed out, or sent an unparseable response."""

    kind = FailureKind.TRANSPORT
    status_code = 502


class SchemaFailure(KnownError):
    """
    Schema evolution failed.

    Raised only during startup. Nothing may run against a partially
    migrated store, so callers let this abort the process.
    """

    kind = FailureKind.SCHEMA_FAILURE
    status_code = 500


class SeedEntryError(KnownError):
    """A single bundled checklist definition could not be loaded."""

    kind = FailureKind.SEED_ENTRY

    def __init__(self, definition: str, message: str, detail: str | None = None):
        self.definition = definition
        super().__init__(f"{definition}: {message}", detail)


class ConflictError(KnownError):
    """A write kept losing to concurrent writers of the same record."""

    kind = FailureKind.CONFLICT
    status_code = 409
