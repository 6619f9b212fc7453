"""Company provisioning for onboarding users.

Every onboarding user belongs to exactly one company. The company row and
the profile link are created together by the ``create_company_and_link_profile``
database function, so a failure can never leave a company without an owner
or a user without a company.
"""

import logging
from typing import Any, cast

from supabase import Client

from variable_api.core.circuit_breaker import CircuitBreakerOpen
from variable_api.core.config import settings
from variable_api.core.exceptions import ProvisioningError
from variable_api.db.supabase import SupabaseClient, supabase_circuit_breaker

logger = logging.getLogger(__name__)

CREATE_AND_LINK_RPC = "create_company_and_link_profile"


class CompanyProvisioner:
    """Resolves, or creates, the company a user onboards into."""

    def __init__(self, db: Client | None = None) -> None:
        self._db = db or SupabaseClient.get_client()

    async def ensure_company(self, user_id: str) -> str:
        """Return the user's company id, creating the company if needed.

        Idempotent: once a company is linked, later calls are a plain read.

        Args:
            user_id: The authenticated user's ID.

        Returns:
            The linked company's ID.

        Raises:
            ProvisioningError: If the lookup or the atomic create-and-link fails.
        """
        existing = await self._get_linked_company_id(user_id)
        if existing:
            return existing

        return await self._create_and_link(user_id, settings.ONBOARDING_DEFAULT_COMPANY_NAME)

    async def _get_linked_company_id(self, user_id: str) -> str | None:
        try:
            with supabase_circuit_breaker.guard():
                response = (
                    self._db.table("profiles")
                    .select("company_id")
                    .eq("id", user_id)
                    .maybe_single()
                    .execute()
                )
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            logger.exception("Failed to read profile company", extra={"user_id": user_id})
            raise ProvisioningError(user_id, f"Failed to look up company: {e}") from e

        if response and response.data:
            company_id = cast(dict[str, Any], response.data).get("company_id")
            return str(company_id) if company_id else None
        return None

    async def _create_and_link(self, user_id: str, company_name: str) -> str:
        try:
            with supabase_circuit_breaker.guard():
                response = self._db.rpc(
                    CREATE_AND_LINK_RPC,
                    {"p_company_name": company_name, "p_user_id": user_id},
                ).execute()
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            logger.exception("Company create-and-link failed", extra={"user_id": user_id})
            raise ProvisioningError(user_id, f"Failed to create company: {e}") from e

        rows = cast(list[dict[str, Any]], response.data or [])
        if not rows or not rows[0].get("company_id"):
            logger.error("Company create-and-link returned no company", extra={"user_id": user_id})
            raise ProvisioningError(user_id, "Company creation returned no company")

        company_id = str(rows[0]["company_id"])
        logger.info(
            "Company provisioned for onboarding user",
            extra={"user_id": user_id, "company_id": company_id},
        )
        return company_id
