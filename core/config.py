"""Workflow configuration."""

import os

from pydantic import BaseModel, Field, model_validator

_ENV_PREFIX = "CASENOTE_"


class WorkflowConfig(BaseModel):
    """
    Tunables for the case note workflow.

    Durations are in hours. Every field can be overridden with a
    CASENOTE_<FIELD_NAME> environment variable via from_env().
    """

    handover_overdue_hours: int = Field(
        default=6,
        description="Pending handovers older than this are flagged overdue",
        ge=1,
        le=168,
    )
    handover_escalation_hours: int = Field(
        default=24,
        description="Pending handovers older than this are escalated",
        ge=1,
        le=720,
    )
    max_batch_size: int = Field(
        default=20,
        description="Most case notes one batch request may carry",
        ge=1,
        le=20,
    )
    request_number_prefix: str = Field(
        default="REQ",
        description="Prefix for generated request numbers",
        min_length=1,
        max_length=8,
    )
    batch_number_prefix: str = Field(
        default="BATCH",
        description="Prefix for generated batch numbers",
        min_length=1,
        max_length=8,
    )

    @model_validator(mode="after")
    def _escalation_after_overdue(self) -> "WorkflowConfig":
        if self.handover_escalation_hours < self.handover_overdue_hours:
            raise ValueError("handover_escalation_hours must be >= handover_overdue_hours")
        return self

    @classmethod
    def from_env(cls) -> "WorkflowConfig":
        """Build config from CASENOTE_* variables, falling back to defaults."""
        overrides = {}
        for name in cls.model_fields:
            value = os.getenv(f"{_ENV_PREFIX}{name.upper()}")
            if value is not None:
                overrides[name] = value
        return cls.model_validate(overrides)
