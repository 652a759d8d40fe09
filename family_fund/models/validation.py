"""
Validation result models.

Produced by the form-input validator before any ledger operation runs.
The ledger re-checks its own preconditions; these results exist so the
UI can explain problems (and warnings) to a person before they submit.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from family_fund.models.fund import utc_now


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'insufficient_balance')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (parsing, required fields)
    Stage 2: Semantic validation (checks against the current fund state)
    """

    action: str = Field(
        ...,
        description="Which form was validated (e.g., 'transaction', 'family_target')"
    )
    validated_at: datetime = Field(default_factory=utc_now)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool = Field(
        ...,
        description="Both stages passed; the operation may be submitted"
    )

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Warning messages for display"
    )
    values: dict[str, Any] = Field(
        default_factory=dict,
        description="Parsed input values, ready to hand to the fund service"
    )

    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]
