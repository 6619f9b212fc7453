"""Reads and display-field writes against the ``companies`` table.

Onboarding never changes a company's subscription; that is owned by the
payment provider's webhook.
"""

import logging
from typing import Any, cast

from supabase import Client

from variable_api.core.circuit_breaker import CircuitBreakerOpen
from variable_api.core.exceptions import DatabaseError, NotFoundError
from variable_api.db.supabase import SupabaseClient, supabase_circuit_breaker
from variable_api.onboarding.models import TenantSnapshot

logger = logging.getLogger(__name__)


class TenantRepository:
    """Company lookups used by the wizard."""

    def __init__(self, db: Client | None = None) -> None:
        self._db = db or SupabaseClient.get_client()

    async def get_snapshot(self, company_id: str) -> TenantSnapshot:
        """Fetch the company's current subscription state.

        Never cached: payment confirmation lands out-of-band.

        Raises:
            NotFoundError: If the company does not exist.
            DatabaseError: If the read fails.
        """
        try:
            with supabase_circuit_breaker.guard():
                response = (
                    self._db.table("companies")
                    .select("id, subscription_status, name, domain")
                    .eq("id", company_id)
                    .maybe_single()
                    .execute()
                )
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            logger.exception("Error fetching company", extra={"company_id": company_id})
            raise DatabaseError(f"Failed to fetch company: {e}") from e

        if not response or not response.data:
            raise NotFoundError("Company", company_id)
        row = cast(dict[str, Any], response.data)
        return TenantSnapshot(
            id=str(row.get("id") or company_id),
            subscription_status=row.get("subscription_status"),
            name=row.get("name"),
            domain=row.get("domain"),
        )

    async def update_display(self, company_id: str, name: str, website: str) -> None:
        """Copy the onboarding company name and website onto the company row.

        Raises:
            DatabaseError: If the update fails.
        """
        try:
            with supabase_circuit_breaker.guard():
                (
                    self._db.table("companies")
                    .update({"name": name, "domain": website})
                    .eq("id", company_id)
                    .execute()
                )
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            raise DatabaseError(f"Failed to update company: {e}") from e
