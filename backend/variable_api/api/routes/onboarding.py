"""API routes for the onboarding wizard.

Each endpoint is one wizard event for the authenticated user. Calls for the
same user are serialized so a transition never overlaps another.
"""

import logging
from typing import Any

from fastapi import APIRouter

from variable_api.api.deps import CurrentUser
from variable_api.onboarding.models import (
    FinishRequest,
    FormUpdateRequest,
    NextStepRequest,
    PaymentCallbackRequest,
    PaymentCallbackResult,
    StepResult,
    WizardView,
)
from variable_api.onboarding.payment_callback import PaymentCallbackHandler
from variable_api.onboarding.tenants import TenantRepository
from variable_api.onboarding.tracker import OnboardingTracker
from variable_api.onboarding.wizard import WizardRegistry, get_wizard_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


def _get_registry() -> WizardRegistry:
    return get_wizard_registry()


def _get_payment_handler() -> PaymentCallbackHandler:
    return PaymentCallbackHandler(TenantRepository())


def _get_tracker() -> OnboardingTracker:
    return OnboardingTracker()


@router.get("/session", response_model=WizardView)
async def get_session(current_user: CurrentUser) -> WizardView:
    """Start onboarding, or return the live wizard position."""
    registry = _get_registry()
    async with registry.lock_for(current_user.id):
        controller = await registry.get_or_start(current_user.id)
        return controller.view()


@router.post("/session/reload", response_model=WizardView)
async def reload_session(current_user: CurrentUser) -> WizardView:
    """Drop the in-memory position and resume from the last persisted step."""
    registry = _get_registry()
    async with registry.lock_for(current_user.id):
        controller = await registry.reload(current_user.id)
        return controller.view()


@router.patch("/form", response_model=WizardView)
async def update_form(body: FormUpdateRequest, current_user: CurrentUser) -> WizardView:
    """Update form fields locally; they are saved with the next step."""
    registry = _get_registry()
    async with registry.lock_for(current_user.id):
        controller = await registry.get_or_start(current_user.id)
        return controller.update_form(**body.model_dump(exclude_unset=True))


@router.post("/next", response_model=StepResult)
async def next_step(current_user: CurrentUser, body: NextStepRequest | None = None) -> StepResult:
    """Advance one step if its gate allows."""
    registry = _get_registry()
    async with registry.lock_for(current_user.id):
        controller = await registry.get_or_start(current_user.id)
        return await controller.next((body or NextStepRequest()).extra)


@router.post("/previous", response_model=StepResult)
async def previous_step(current_user: CurrentUser) -> StepResult:
    """Step back one step (not saved)."""
    registry = _get_registry()
    async with registry.lock_for(current_user.id):
        controller = await registry.get_or_start(current_user.id)
        return controller.previous()


@router.post("/finish", response_model=StepResult)
async def finish_onboarding(
    current_user: CurrentUser, body: FinishRequest | None = None
) -> StepResult:
    """Complete onboarding from the last step.

    The completed wizard is closed to transitions, so it is not kept live.
    """
    registry = _get_registry()
    async with registry.lock_for(current_user.id):
        controller = await registry.get_or_start(current_user.id)
        result = await controller.finish((body or FinishRequest()).final_data)
        registry.discard(current_user.id)
        return result


@router.post("/payment-callback", response_model=PaymentCallbackResult)
async def payment_callback(
    body: PaymentCallbackRequest, current_user: CurrentUser
) -> PaymentCallbackResult:
    """Handle the ``success`` / ``canceled`` flags of a payment redirect."""
    registry = _get_registry()
    async with registry.lock_for(current_user.id):
        controller = await registry.get_or_start(current_user.id)
        return await _get_payment_handler().handle(controller, body.success, body.canceled)


@router.get("/routing")
async def get_routing(current_user: CurrentUser) -> dict[str, Any]:
    """Determine post-auth routing for user."""
    destination = await _get_tracker().get_routing_decision(current_user.id)
    return {"route": destination}
