"""Onboarding wizard controller.

Holds one user's position in the five-step wizard. Forward moves are gated
and persisted; backward moves only change the in-memory position, so a
reload resumes at the last persisted step. Completion is one-way.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from cachetools import TTLCache

from variable_api.core.config import settings
from variable_api.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    SessionCompletedError,
)
from variable_api.onboarding.gates import GateDecision, GateRefusal, StepGateEvaluator, evaluate
from variable_api.onboarding.models import (
    FIRST_STEP,
    LAST_STEP,
    STEP_TITLES,
    FormState,
    OnboardingSession,
    OnboardingStep,
    StepResult,
    TenantSnapshot,
    WizardView,
    progress_for,
)
from variable_api.onboarding.provisioner import CompanyProvisioner
from variable_api.onboarding.session_store import OnboardingSessionStore
from variable_api.onboarding.tenants import TenantRepository

logger = logging.getLogger(__name__)

_REFUSAL_NOTICES: dict[GateRefusal, str] = {
    GateRefusal.MISSING_COMPANY_DETAILS: "Please enter your company name and website.",
    GateRefusal.MISSING_ONBOARDING_PATH: "Please choose how you'd like to onboard.",
    GateRefusal.SUBSCRIPTION_INACTIVE: "Please complete your subscription before proceeding.",
    GateRefusal.NO_COMPANY: "Your company setup is not ready yet. Please reload and try again.",
    GateRefusal.STEP_OUT_OF_RANGE: "There are no further steps. Finish onboarding to continue.",
}


class WizardController:
    """Drives one user's onboarding session.

    Calls are expected to be serialized by the caller; the controller holds
    no lock of its own.
    """

    def __init__(
        self,
        user_id: str,
        store: OnboardingSessionStore,
        provisioner: CompanyProvisioner,
        tenants: TenantRepository,
        gates: StepGateEvaluator | None = None,
    ) -> None:
        self.user_id = user_id
        self._store = store
        self._provisioner = provisioner
        self._tenants = tenants
        self._gates = gates or StepGateEvaluator(tenants)

        self._session: OnboardingSession | None = None
        self._company_id: str | None = None
        self._step: int = FIRST_STEP.value
        self.form = FormState()

    @classmethod
    def for_user(cls, user_id: str) -> "WizardController":
        """Build a controller wired to the shared Supabase client."""
        return cls(
            user_id,
            store=OnboardingSessionStore(),
            provisioner=CompanyProvisioner(),
            tenants=TenantRepository(),
        )

    # --- State ---

    @property
    def session(self) -> OnboardingSession:
        if self._session is None:
            raise NotFoundError("Onboarding session")
        return self._session

    @property
    def current_step(self) -> int:
        return self._step

    @property
    def company_id(self) -> str | None:
        return self._company_id

    @property
    def is_complete(self) -> bool:
        return self._session is not None and self._session.is_complete

    def view(self) -> WizardView:
        session = self.session
        return WizardView(
            session_id=session.id,
            company_id=self._company_id,
            current_step=self._step,
            persisted_step=session.current_step,
            step_title=STEP_TITLES[OnboardingStep(self._step)],
            status=session.status,
            progress_percentage=progress_for(self._step, session.status),
            is_complete=session.is_complete,
            form=self.form,
        )

    # --- Transitions ---

    async def start(self) -> WizardView:
        """Provision the company, then load or create the session.

        Resumes at the persisted step with the persisted form fields.

        Raises:
            ProvisioningError: If the company cannot be created and linked.
            DatabaseError: If the session cannot be read or created.
        """
        company_id = await self._provisioner.ensure_company(self.user_id)
        session = await self._store.load_or_create(self.user_id, company_id)

        self._session = session
        self._company_id = session.company_id or company_id
        self._step = session.current_step
        self.form = FormState.from_session_data(session.session_data)

        logger.info(
            "Onboarding wizard started",
            extra={
                "user_id": self.user_id,
                "session_id": session.id,
                "current_step": session.current_step,
            },
        )
        return self.view()

    def update_form(self, **fields: Any) -> WizardView:
        """Change local form fields. Nothing is persisted until ``next``."""
        self._ensure_open()
        changes = {key: value for key, value in fields.items() if value is not None}
        self.form = FormState.model_validate({**self.form.model_dump(), **changes})
        return self.view()

    async def next(self, extra: dict[str, Any] | None = None) -> StepResult:
        """Advance one step if its gate allows, persisting step and form data.

        Args:
            extra: Step-specific fields merged into session_data alongside the form.

        Returns:
            Result with ``changed=False`` and a notice if the gate refused.

        Raises:
            SessionCompletedError: If onboarding is already completed.
            DatabaseError: If the gate read or the save fails; the step is unchanged.
        """
        self._ensure_open()
        target = self._step + 1
        if not self.company_id:
            return self._refused(GateDecision.refuse(GateRefusal.NO_COMPANY))

        decision = await self._gates.check(target, self.form, self.company_id)
        if not decision.allowed:
            return self._refused(decision)
        return await self._advance_to(target, extra)

    async def advance_past_paywall(self, tenant: TenantSnapshot) -> StepResult:
        """Move from plan selection to step 4 using an already-fetched company snapshot."""
        self._ensure_open()
        if self._step != OnboardingStep.PLAN_SELECTION:
            return StepResult(changed=False, view=self.view())

        target = OnboardingStep.BUSINESS_ANALYSIS.value
        decision = evaluate(target, self.form, tenant)
        if not decision.allowed:
            return self._refused(decision)
        return await self._advance_to(target, None)

    def previous(self) -> StepResult:
        """Step back one step in memory only.

        A reload resumes at the persisted step, which may be ahead of here.
        """
        self._ensure_open()
        if self._step <= FIRST_STEP.value:
            return StepResult(changed=False, view=self.view())
        self._step -= 1
        return StepResult(changed=True, view=self.view())

    async def finish(self, final_data: dict[str, Any] | None = None) -> StepResult:
        """Complete onboarding from the last step.

        The company's display name and website are then updated best-effort:
        a failure there is logged and does not undo the completion.

        Raises:
            SessionCompletedError: If onboarding is already completed.
            InvalidTransitionError: If not positioned at the last step.
            DatabaseError: If marking the session completed fails.
        """
        self._ensure_open()
        if self._step != LAST_STEP:
            raise InvalidTransitionError("finish onboarding", self._step)

        data = {**self.form.to_session_data(), **(final_data or {})}
        self._session = await self._store.complete(self.session.id, data)
        self._step = self._session.current_step

        logger.info(
            "Onboarding completed",
            extra={"user_id": self.user_id, "session_id": self._session.id},
        )

        await self._update_company_display()
        return StepResult(
            changed=True, view=self.view(), notice="Onboarding completed successfully!"
        )

    # --- Private helpers ---

    async def _advance_to(self, target: int, extra: dict[str, Any] | None) -> StepResult:
        data = {**self.form.to_session_data(), **(extra or {})}
        self._session = await self._store.save(self.session.id, target, data)
        self._step = target
        return StepResult(changed=True, view=self.view())

    async def _update_company_display(self) -> None:
        company_id = self.company_id
        if not company_id or not self.form.company_name:
            return
        try:
            await self._tenants.update_display(company_id, self.form.company_name, self.form.website)
        except Exception as e:
            logger.warning(
                "Company display update failed after onboarding completion",
                extra={"user_id": self.user_id, "company_id": company_id, "error": str(e)},
            )

    def _refused(self, decision: GateDecision) -> StepResult:
        refusal = decision.refusal or GateRefusal.STEP_OUT_OF_RANGE
        return StepResult(
            changed=False,
            view=self.view(),
            notice=_REFUSAL_NOTICES[refusal],
            refusal=refusal.value,
        )

    def _ensure_open(self) -> None:
        session = self.session
        if session.is_complete:
            raise SessionCompletedError(session.id)


class WizardRegistry:
    """Live wizard controllers, one per user.

    The in-memory position (including unpersisted backward moves) lives
    here between requests. ``reload`` drops it and resumes from storage.
    Entries idle for ``ttl`` seconds, or pushed out once ``maxsize`` users
    are live, are dropped the same way; the next call resumes from storage.

    Args:
        factory: Builds an unstarted controller for a user.
        maxsize: Most users held at once.
        ttl: Seconds an entry survives without being used.
        timer: Clock for expiry, replaceable in tests.
    """

    def __init__(
        self,
        factory: Callable[[str], WizardController] | None = None,
        maxsize: int | None = None,
        ttl: float | None = None,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory or WizardController.for_user
        maxsize = maxsize or settings.WIZARD_REGISTRY_MAX_USERS
        ttl = settings.WIZARD_REGISTRY_TTL_SECONDS if ttl is None else ttl
        self._controllers: TTLCache[str, WizardController] = TTLCache(
            maxsize=maxsize, ttl=ttl, timer=timer
        )
        self._locks: TTLCache[str, asyncio.Lock] = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._controllers

    def __len__(self) -> int:
        return len(self._controllers)

    def lock_for(self, user_id: str) -> asyncio.Lock:
        """Per-user lock the HTTP layer holds around each wizard call."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
        # Re-inserting restarts the entry's expiry
        self._locks[user_id] = lock
        return lock

    async def get_or_start(self, user_id: str) -> WizardController:
        controller = self._controllers.get(user_id)
        if controller is None:
            controller = self._factory(user_id)
            await controller.start()
        self._controllers[user_id] = controller
        return controller

    async def reload(self, user_id: str) -> WizardController:
        self.discard(user_id)
        return await self.get_or_start(user_id)

    def discard(self, user_id: str) -> None:
        self._controllers.pop(user_id, None)


_registry: WizardRegistry | None = None


def get_wizard_registry() -> WizardRegistry:
    """Get or create the process-wide wizard registry."""
    global _registry
    if _registry is None:
        _registry = WizardRegistry()
    return _registry
