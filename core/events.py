"""
Domain events for the case note workflow.

Immutable event objects published after a transition has committed. Services
publish what happened; handlers (notifications today) react without the
publisher knowing who is listening.

Event Categories:
- CaseNoteEvent: request decisions and rejected returns
- HandoverEvent: handover requests, responses and overdue marks
- BatchEvent: batch decisions

Events carry the committed domain objects so handlers don't need to re-fetch
state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class WorkflowEvent:
    """Base class for all workflow domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# CASE NOTE EVENTS
# =============================================================================


@dataclass(frozen=True)
class CaseNoteEvent(WorkflowEvent):
    """Events related to a single case note request."""
    case_note: Any = None  # CaseNote


@dataclass(frozen=True)
class CaseNoteApproved(CaseNoteEvent):
    """MR Staff approved a request."""

    @classmethod
    def create(cls, case_note: Any) -> "CaseNoteApproved":
        return cls(case_note=case_note)


@dataclass(frozen=True)
class CaseNoteRejected(CaseNoteEvent):
    """MR Staff rejected a request."""

    @classmethod
    def create(cls, case_note: Any) -> "CaseNoteRejected":
        return cls(case_note=case_note)


@dataclass(frozen=True)
class ReturnRejected(CaseNoteEvent):
    """MR Staff refused a returned case note; the CA holds it again."""

    @classmethod
    def create(cls, case_note: Any) -> "ReturnRejected":
        return cls(case_note=case_note)


# =============================================================================
# HANDOVER EVENTS
# =============================================================================


@dataclass(frozen=True)
class HandoverEvent(WorkflowEvent):
    """Events related to custody transfer."""
    handover: Any = None  # HandoverRequest
    case_note: Any = None  # CaseNote


@dataclass(frozen=True)
class HandoverRequested(HandoverEvent):
    """A handover was opened and awaits the current holder."""

    @classmethod
    def create(cls, handover: Any, case_note: Any) -> "HandoverRequested":
        return cls(handover=handover, case_note=case_note)


@dataclass(frozen=True)
class HandoverResponded(HandoverEvent):
    """The current holder approved or rejected a handover."""

    @classmethod
    def create(cls, handover: Any, case_note: Any) -> "HandoverResponded":
        return cls(handover=handover, case_note=case_note)


@dataclass(frozen=True)
class HandoverOverdue(HandoverEvent):
    """A handover stayed pending past the overdue or escalation window."""
    escalated: bool = False

    @classmethod
    def create(cls, handover: Any, case_note: Any, escalated: bool = False) -> "HandoverOverdue":
        return cls(handover=handover, case_note=case_note, escalated=escalated)


# =============================================================================
# BATCH EVENTS
# =============================================================================


@dataclass(frozen=True)
class BatchEvent(WorkflowEvent):
    """Events related to batch requests."""
    batch: Any = None  # BatchRequest


@dataclass(frozen=True)
class BatchProcessed(BatchEvent):
    """MR Staff approved or rejected a whole batch."""

    @classmethod
    def create(cls, batch: Any) -> "BatchProcessed":
        return cls(batch=batch)
