"""Loan eligibility and fine rules.

Everything here is a pure function of its inputs. Callers gather the
member's loan counts inside their own transaction and pass them in, so the
same decision logic serves checkout and any read-only "may this member
borrow?" preview.

Eligibility checks run in a fixed order and the first failure wins:
1. Member blocked by staff
2. Member holds an overdue loan (when ``block_on_overdue`` is set)
3. Member is at the active-loan limit (0 means no limit)
"""

from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..errors import PolicyRejectedError


class PolicyConfig(BaseModel):
    """Circulation policy for one request. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    loan_days_default: int = Field(default=15, ge=1)
    extend_days_default: int = Field(default=15, ge=1)
    max_active_loans: int = Field(default=5, ge=0)
    block_on_overdue: bool = True
    fine_enabled: bool = False
    fine_cents_per_day: int = Field(default=200, ge=0)

    def fine_for(self, days_late: int) -> int:
        """Fine in cents for a return ``days_late`` days after the due date."""
        if not self.fine_enabled:
            return 0
        return max(0, days_late) * self.fine_cents_per_day


class MemberLoanStats(BaseModel):
    active: int = Field(default=0, ge=0)
    overdue: int = Field(default=0, ge=0)


class EligibilityReason(str, Enum):
    MEMBER_BLOCKED = "member_blocked"
    OVERDUE_BLOCK = "overdue_block"
    LOAN_LIMIT = "loan_limit"


class EligibilityDecision(BaseModel):
    approved: bool
    reason: EligibilityReason | None = None
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def rejection_has_reason(self) -> "EligibilityDecision":
        if not self.approved and self.reason is None:
            raise ValueError("A rejected decision must name its reason")
        return self


class BorrowerLike(Protocol):
    is_blocked: bool
    note: str | None


def evaluate_eligibility(
    member: BorrowerLike, stats: MemberLoanStats, policy: PolicyConfig
) -> EligibilityDecision:
    if member.is_blocked:
        return EligibilityDecision(
            approved=False,
            reason=EligibilityReason.MEMBER_BLOCKED,
            message="Member is blocked from borrowing",
            details={"note": member.note},
        )

    if policy.block_on_overdue and stats.overdue > 0:
        return EligibilityDecision(
            approved=False,
            reason=EligibilityReason.OVERDUE_BLOCK,
            message="Member has overdue loans",
            details={"overdue_loans": stats.overdue},
        )

    if policy.max_active_loans > 0 and stats.active >= policy.max_active_loans:
        return EligibilityDecision(
            approved=False,
            reason=EligibilityReason.LOAN_LIMIT,
            message="Member has reached the active loan limit",
            details={"active_loans": stats.active, "limit": policy.max_active_loans},
        )

    return EligibilityDecision(approved=True)


def require_eligible(member: BorrowerLike, stats: MemberLoanStats, policy: PolicyConfig) -> None:
    """Raise ``PolicyRejectedError`` unless the member may borrow another book."""
    decision = evaluate_eligibility(member, stats, policy)
    if decision.approved:
        return
    raise PolicyRejectedError(
        decision.message,
        code=decision.reason.value if decision.reason else "ineligible",
        details=decision.details,
    )
