"""Step gates: whether the wizard may enter a step.

Gates are evaluated for the step being entered. A refusal is a normal
result, not an error, and carries a code rather than a message; the
wizard decides what to tell the user.
"""

from enum import Enum

from pydantic import BaseModel

from variable_api.onboarding.models import (
    LAST_STEP,
    FormState,
    OnboardingPath,
    OnboardingStep,
    TenantSnapshot,
)
from variable_api.onboarding.tenants import TenantRepository


class GateRefusal(str, Enum):
    """Why a transition was refused."""

    MISSING_COMPANY_DETAILS = "missing_company_details"
    MISSING_ONBOARDING_PATH = "missing_onboarding_path"
    SUBSCRIPTION_INACTIVE = "subscription_inactive"
    NO_COMPANY = "no_company"
    STEP_OUT_OF_RANGE = "step_out_of_range"


class GateDecision(BaseModel):
    """Result of evaluating a gate."""

    allowed: bool
    refusal: GateRefusal | None = None

    @classmethod
    def allow(cls) -> "GateDecision":
        return cls(allowed=True)

    @classmethod
    def refuse(cls, refusal: GateRefusal) -> "GateDecision":
        return cls(allowed=False, refusal=refusal)


def evaluate(
    target_step: int, form: FormState, tenant: TenantSnapshot | None = None
) -> GateDecision:
    """Decide whether ``target_step`` may be entered.

    Args:
        target_step: The step the wizard would move to.
        form: The current in-memory form fields.
        tenant: Fresh company snapshot; only consulted when entering step 4.

    Returns:
        The gate decision.
    """
    if target_step == OnboardingStep.ONBOARDING_PATH:
        if form.company_name.strip() and form.website.strip():
            return GateDecision.allow()
        return GateDecision.refuse(GateRefusal.MISSING_COMPANY_DETAILS)

    if target_step == OnboardingStep.PLAN_SELECTION:
        if form.onboarding_path in (OnboardingPath.CONSULTING, OnboardingPath.SELF_SERVICE):
            return GateDecision.allow()
        return GateDecision.refuse(GateRefusal.MISSING_ONBOARDING_PATH)

    if target_step == OnboardingStep.BUSINESS_ANALYSIS:
        if tenant is None:
            return GateDecision.refuse(GateRefusal.NO_COMPANY)
        if tenant.is_paid:
            return GateDecision.allow()
        return GateDecision.refuse(GateRefusal.SUBSCRIPTION_INACTIVE)

    # The path-specific step 4 form owns its own validation
    if target_step == LAST_STEP:
        return GateDecision.allow()

    return GateDecision.refuse(GateRefusal.STEP_OUT_OF_RANGE)


def can_advance(target_step: int, form: FormState, tenant: TenantSnapshot | None = None) -> bool:
    return evaluate(target_step, form, tenant).allowed


class StepGateEvaluator:
    """Evaluates gates, fetching the company when the paywall gate needs it."""

    def __init__(self, tenants: TenantRepository) -> None:
        self._tenants = tenants

    async def check(
        self, target_step: int, form: FormState, company_id: str | None
    ) -> GateDecision:
        """Evaluate the gate for ``target_step``.

        Entering step 4 does one fresh read of the company's subscription
        status. There is no retry here; a lagging payment webhook shows up
        as a refusal.

        Raises:
            DatabaseError: If the company read fails.
        """
        tenant: TenantSnapshot | None = None
        if target_step == OnboardingStep.BUSINESS_ANALYSIS and company_id:
            tenant = await self._tenants.get_snapshot(company_id)
        return evaluate(target_step, form, tenant)
