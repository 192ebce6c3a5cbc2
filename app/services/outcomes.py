"""Internal result of handling one postback. Routes turn it into each provider's wire format."""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class OutcomeStatus(str, Enum):
    CREDITED = "credited"
    DUPLICATE = "duplicate"
    NO_CREDIT = "no_credit"  # zero or unparseable payout, receipt recorded
    USER_NOT_FOUND = "user_not_found"  # recorded as pending for reconciliation
    REVERSED = "reversed"
    ORIGINAL_NOT_FOUND = "original_not_found"
    ALREADY_REVERSED = "already_reversed"
    NOT_REVERSIBLE = "not_reversible"
    IGNORED = "ignored"
    TEST = "test_received"


_REVERSAL_STATUSES = (
    OutcomeStatus.REVERSED,
    OutcomeStatus.ALREADY_REVERSED,
    OutcomeStatus.NOT_REVERSIBLE,
    OutcomeStatus.ORIGINAL_NOT_FOUND,
)


class Outcome(BaseModel):
    status: OutcomeStatus
    transaction_id: str | None = None
    user_id: str | None = None
    points: int = 0

    def to_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": self.status.value}
        if self.transaction_id:
            out["transaction_id"] = self.transaction_id
        if self.user_id:
            out["user_id"] = self.user_id
        if self.status in _REVERSAL_STATUSES:
            out["points_deducted"] = self.points
        elif self.status == OutcomeStatus.CREDITED:
            out["points"] = self.points
        return out


class Diagnostic(BaseModel):
    """Why an authenticated postback could not be processed. Logged, never shown as a failure status."""
    code: str
    message: str
    exc_type: str | None = None


class PostbackResult(BaseModel):
    provider: str
    outcome: Outcome | None = None
    diagnostic: Diagnostic | None = None

    @property
    def ok(self) -> bool:
        return self.diagnostic is None
