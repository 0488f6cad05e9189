"""Runtime options for the mapper."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RetryOptions(BaseModel):
    """Bounded exponential backoff for transient store faults.

    The delay before retry ``n`` is ``base_delay * 2 ** (n - 1)`` seconds,
    capped at ``max_delay``.
    """

    model_config = ConfigDict(frozen=True)

    max_retry_count: int = Field(default=3, ge=0)
    base_delay: float = Field(default=0.1, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)

    @model_validator(mode="after")
    def _check_bounds(self) -> RetryOptions:
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        return self


class OdmOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    created_at_field: str = "_createdAt"
    updated_at_field: str = "_updatedAt"
    log_command_data: bool = True
    retry: RetryOptions = Field(default_factory=RetryOptions)

    @property
    def timestamp_fields(self) -> frozenset[str]:
        return frozenset({self.created_at_field, self.updated_at_field})
