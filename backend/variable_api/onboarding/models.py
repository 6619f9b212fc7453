"""Pydantic models for the onboarding wizard."""

from datetime import datetime
from enum import Enum, IntEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field


class OnboardingStatus(str, Enum):
    """Lifecycle of an onboarding session row."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class OnboardingPath(str, Enum):
    """The two mutually exclusive ways through step 4."""

    CONSULTING = "consulting"
    SELF_SERVICE = "self_service"


class OnboardingStep(IntEnum):
    """Wizard steps, 1-indexed as persisted in ``current_step``."""

    COMPANY_INFORMATION = 1
    ONBOARDING_PATH = 2
    PLAN_SELECTION = 3
    BUSINESS_ANALYSIS = 4
    DEPLOY_AGENTS = 5


FIRST_STEP = OnboardingStep.COMPANY_INFORMATION
LAST_STEP = OnboardingStep.DEPLOY_AGENTS
TOTAL_STEPS = len(OnboardingStep)

STEP_TITLES: dict[OnboardingStep, str] = {
    OnboardingStep.COMPANY_INFORMATION: "Company Information",
    OnboardingStep.ONBOARDING_PATH: "Choose Onboarding Path",
    OnboardingStep.PLAN_SELECTION: "Select Your Plan",
    OnboardingStep.BUSINESS_ANALYSIS: "Business Analysis",
    OnboardingStep.DEPLOY_AGENTS: "Deploy Agents",
}

# Subscription states that unlock the steps after the paywall
ALLOWED_SUBSCRIPTION_STATUSES: frozenset[str] = frozenset({"active", "trialing"})


def progress_for(step: int, status: OnboardingStatus) -> int:
    """Percentage shown in progress bars and the admin tracker."""
    if status == OnboardingStatus.COMPLETED:
        return 100
    return round(step / TOTAL_STEPS * 100)


class OnboardingSession(BaseModel):
    """Persisted onboarding progress for one user."""

    id: str
    user_id: str
    company_id: str | None = None
    current_step: int = Field(default=FIRST_STEP.value, ge=FIRST_STEP.value, le=LAST_STEP.value)
    status: OnboardingStatus = OnboardingStatus.IN_PROGRESS
    session_data: dict[str, Any] = Field(default_factory=dict)
    progress_percentage: int = 0
    started_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_complete(self) -> bool:
        return self.status == OnboardingStatus.COMPLETED


class TenantSnapshot(BaseModel):
    """Point-in-time read of the fields onboarding needs from ``companies``."""

    id: str
    subscription_status: str | None = None
    name: str | None = None
    domain: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.subscription_status in ALLOWED_SUBSCRIPTION_STATUSES


class FormState(BaseModel):
    """Wizard form fields held in memory between transitions."""

    company_name: str = ""
    website: str = ""
    industry: str = ""
    description: str = ""
    onboarding_path: OnboardingPath | None = None

    def to_session_data(self) -> dict[str, Any]:
        """Flatten into the keys stored in ``session_data``."""
        return {
            "company_name": self.company_name,
            "website": self.website,
            "industry": self.industry,
            "description": self.description,
            "onboarding_path": self.onboarding_path.value if self.onboarding_path else "",
        }

    @classmethod
    def from_session_data(cls, data: dict[str, Any]) -> "FormState":
        """Replay persisted ``session_data`` into form fields.

        Rows written by the browser client use ``name`` and
        ``onboardingPath``; both spellings are read, ours first. Unknown
        keys are ignored and an unrecognized path is dropped, so older rows
        never prevent a resume.
        """
        path = data.get("onboarding_path") or data.get("onboardingPath")
        try:
            onboarding_path = OnboardingPath(path) if path else None
        except ValueError:
            onboarding_path = None
        return cls(
            company_name=str(data.get("company_name") or data.get("name") or ""),
            website=str(data.get("website") or ""),
            industry=str(data.get("industry") or ""),
            description=str(data.get("description") or ""),
            onboarding_path=onboarding_path,
        )


# --- Session store write operations ---
#
# The store accepts only these tagged writes. Only CompleteSession sets the
# terminal status and none of them clears it.


class CreateSession(BaseModel):
    """Insert the first row for a user."""

    kind: Literal["create"] = "create"
    company_id: str | None = None


class AdvanceSession(BaseModel):
    """Move to ``step`` and merge ``session_data``.

    ``company_id`` fills in a row that was created before the user had a
    company; it never replaces an existing link.
    """

    kind: Literal["advance"] = "advance"
    step: int = Field(ge=FIRST_STEP.value, le=LAST_STEP.value)
    session_data: dict[str, Any] = Field(default_factory=dict)
    company_id: str | None = None


class CompleteSession(BaseModel):
    """Merge final ``session_data`` and mark the session completed."""

    kind: Literal["complete"] = "complete"
    session_data: dict[str, Any] = Field(default_factory=dict)


SessionWrite = Annotated[AdvanceSession | CompleteSession, Field(discriminator="kind")]


# --- Wizard views and results ---


class WizardView(BaseModel):
    """What a client needs to render the wizard."""

    session_id: str
    company_id: str | None
    current_step: int
    persisted_step: int
    step_title: str
    total_steps: int = TOTAL_STEPS
    status: OnboardingStatus
    progress_percentage: int
    is_complete: bool
    form: FormState


class StepResult(BaseModel):
    """Outcome of a wizard transition.

    ``changed`` is False when a gate refused; ``notice`` then says why.
    """

    changed: bool
    view: WizardView
    notice: str | None = None
    refusal: str | None = None


class PaymentOutcome(str, Enum):
    """Result of handling a redirect back from the payment provider."""

    VERIFIED = "verified"
    PENDING = "pending"
    CANCELED = "canceled"
    IGNORED = "ignored"


class PaymentCallbackResult(BaseModel):
    """Outcome of the payment callback, including whether to strip the query params."""

    outcome: PaymentOutcome
    clear_params: bool
    attempts: int = 0
    notice: str | None = None
    view: WizardView | None = None


class OnboardingSummary(BaseModel):
    """Company-wide onboarding progress for the admin tracker."""

    company_id: str
    total: int
    completed: int
    in_progress: int
    not_started: int
    overall_progress: int
    sessions: list[OnboardingSession] = Field(default_factory=list)


# --- Request bodies ---


class FormUpdateRequest(BaseModel):
    """Partial form update; omitted fields are left unchanged."""

    company_name: str | None = None
    website: str | None = None
    industry: str | None = None
    description: str | None = None
    onboarding_path: OnboardingPath | None = None


class NextStepRequest(BaseModel):
    """Request body for advancing; ``extra`` is merged into session_data."""

    extra: dict[str, Any] = Field(default_factory=dict)


class FinishRequest(BaseModel):
    """Request body for completing onboarding."""

    final_data: dict[str, Any] = Field(default_factory=dict)


class PaymentCallbackRequest(BaseModel):
    """Query flags from the payment provider redirect."""

    success: bool = False
    canceled: bool = False
