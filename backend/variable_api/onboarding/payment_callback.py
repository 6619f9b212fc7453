"""Handling for the redirect back from the payment provider.

The webhook that activates a subscription can land after the user is
redirected back, so a success redirect re-reads the company a bounded
number of times before giving up with a pending notice.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from variable_api.core.circuit_breaker import CircuitBreakerOpen
from variable_api.core.config import settings
from variable_api.core.exceptions import DatabaseError
from variable_api.onboarding.models import PaymentCallbackResult, PaymentOutcome, TenantSnapshot
from variable_api.onboarding.tenants import TenantRepository
from variable_api.onboarding.wizard import WizardController

logger = logging.getLogger(__name__)

VERIFIED_NOTICE = "Payment successful! Your subscription is now active."
PENDING_NOTICE = (
    "Payment verification pending. Your plan will unlock as soon as the payment is confirmed."
)
CANCELED_NOTICE = "Payment was canceled. Please try again when ready."


class PaymentCallbackHandler:
    """Verifies a payment redirect and moves the wizard past the paywall.

    Args:
        tenants: Company reader.
        max_attempts: Total subscription reads per callback.
        delay_seconds: Fixed pause between reads.
        timeout_seconds: Budget for the whole verification sequence.
        sleep: Awaitable sleep, replaceable in tests.
    """

    def __init__(
        self,
        tenants: TenantRepository,
        max_attempts: int | None = None,
        delay_seconds: float | None = None,
        timeout_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._tenants = tenants
        self.max_attempts = max(1, max_attempts or settings.PAYMENT_VERIFY_MAX_ATTEMPTS)
        self.delay_seconds = (
            settings.PAYMENT_VERIFY_DELAY_SECONDS if delay_seconds is None else delay_seconds
        )
        self.timeout_seconds = (
            settings.PAYMENT_VERIFY_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self._sleep = sleep

    async def handle(
        self, controller: WizardController, success: bool, canceled: bool
    ) -> PaymentCallbackResult:
        """React to the ``success`` / ``canceled`` redirect flags.

        Returns:
            The outcome; ``clear_params`` tells the client to strip the flags
            so a refresh does not handle the same redirect twice.
        """
        if success:
            return await self._verify(controller)

        if canceled:
            logger.info("Payment canceled by user", extra={"user_id": controller.user_id})
            return PaymentCallbackResult(
                outcome=PaymentOutcome.CANCELED,
                clear_params=True,
                notice=CANCELED_NOTICE,
                view=controller.view(),
            )

        return PaymentCallbackResult(outcome=PaymentOutcome.IGNORED, clear_params=False)

    async def _verify(self, controller: WizardController) -> PaymentCallbackResult:
        company_id = controller.company_id
        if not company_id:
            return PaymentCallbackResult(outcome=PaymentOutcome.IGNORED, clear_params=False)

        attempts = 0
        tenant: TenantSnapshot | None = None
        try:
            async with asyncio.timeout(self.timeout_seconds):
                while attempts < self.max_attempts:
                    if attempts:
                        await self._sleep(self.delay_seconds)
                    attempts += 1
                    tenant = await self._read(company_id)
                    if tenant is not None and tenant.is_paid:
                        break
        except TimeoutError:
            logger.warning(
                "Payment verification timed out",
                extra={"user_id": controller.user_id, "attempts": attempts},
            )

        if tenant is None or not tenant.is_paid:
            logger.warning(
                "Payment not yet reflected on company",
                extra={
                    "user_id": controller.user_id,
                    "company_id": company_id,
                    "attempts": attempts,
                    "subscription_status": tenant.subscription_status if tenant else None,
                },
            )
            return PaymentCallbackResult(
                outcome=PaymentOutcome.PENDING,
                clear_params=False,
                attempts=attempts,
                notice=PENDING_NOTICE,
                view=controller.view(),
            )

        # A completed session is closed to transitions; the redirect is still valid
        if controller.is_complete:
            advanced, view = False, controller.view()
        else:
            result = await controller.advance_past_paywall(tenant)
            advanced, view = result.changed, result.view

        logger.info(
            "Payment verified",
            extra={
                "user_id": controller.user_id,
                "company_id": company_id,
                "attempts": attempts,
                "advanced": advanced,
            },
        )
        return PaymentCallbackResult(
            outcome=PaymentOutcome.VERIFIED,
            clear_params=True,
            attempts=attempts,
            notice=VERIFIED_NOTICE,
            view=view,
        )

    async def _read(self, company_id: str) -> TenantSnapshot | None:
        """One subscription read; a failed read counts as not yet verified."""
        try:
            return await self._tenants.get_snapshot(company_id)
        except (DatabaseError, CircuitBreakerOpen) as e:
            logger.warning(
                "Subscription re-check failed",
                extra={"company_id": company_id, "error": str(e)},
            )
            return None
