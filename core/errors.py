"""Typed exceptions for case note workflow failures."""


class CaseNoteError(Exception):
    """Base class for every workflow failure surfaced to callers."""


class ValidationError(CaseNoteError):
    """Input is malformed or violates a business rule independent of state."""


class AuthorizationError(CaseNoteError):
    """Actor lacks the capability or the role the transition requires."""

    def __init__(self, message: str, capability: str | None = None):
        self.capability = capability
        super().__init__(message)


class NotFoundError(CaseNoteError):
    """Referenced record does not exist (or is soft-deleted)."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class StateConflictError(CaseNoteError):
    """
    Guard failed against the record's current state.

    Carries the observed status and what the transition required so the
    caller can show something better than a generic failure.
    """

    def __init__(
        self,
        message: str,
        current_status: str | None = None,
        required_status: str | None = None,
    ):
        self.current_status = current_status
        self.required_status = required_status
        super().__init__(message)


class IntegrityFailure(CaseNoteError):
    """Storage failed mid-transition. The transaction was rolled back."""
