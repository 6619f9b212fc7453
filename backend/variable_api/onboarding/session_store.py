"""Persistence adapter for the ``onboarding_sessions`` table.

Writes go through a closed set of operations (create, advance, complete)
rather than a generic row update. Every write rewrites the whole row state
it touches: two writers on the same session clobber each other, which is
accepted because a session has a single owner.
"""

import logging
from datetime import UTC, datetime
from typing import Any, cast

from supabase import Client

from variable_api.core.circuit_breaker import CircuitBreakerOpen
from variable_api.core.exceptions import DatabaseError, NotFoundError
from variable_api.db.supabase import SupabaseClient, supabase_circuit_breaker
from variable_api.onboarding.models import (
    LAST_STEP,
    AdvanceSession,
    CompleteSession,
    CreateSession,
    OnboardingSession,
    OnboardingStatus,
    SessionWrite,
    progress_for,
)

logger = logging.getLogger(__name__)

TABLE = "onboarding_sessions"


class OnboardingSessionStore:
    """Reads and writes onboarding sessions, one row per user."""

    def __init__(self, db: Client | None = None) -> None:
        self._db = db or SupabaseClient.get_client()

    async def load_or_create(self, user_id: str, company_id: str | None) -> OnboardingSession:
        """Return the user's session, creating it at step 1 if none exists.

        Two near-simultaneous first loads may both insert; the unique
        constraint on ``user_id`` makes the loser fail, and it is not retried.

        Args:
            user_id: The authenticated user's ID.
            company_id: The user's company, recorded on a new row and
                backfilled onto an existing row that has none.

        Returns:
            The existing or newly created session.
        """
        existing = await self.get_for_user(user_id)
        if existing is None:
            return await self._create(user_id, CreateSession(company_id=company_id))

        if company_id and not existing.company_id:
            logger.info(
                "Linking onboarding session to company",
                extra={"session_id": existing.id, "company_id": company_id},
            )
            return await self.apply(
                existing.id,
                AdvanceSession(step=existing.current_step, company_id=company_id),
            )
        return existing

    async def save(
        self, session_id: str, step: int, session_data: dict[str, Any] | None = None
    ) -> OnboardingSession:
        """Persist a step transition, merging ``session_data`` into the row."""
        return await self.apply(
            session_id, AdvanceSession(step=step, session_data=session_data or {})
        )

    async def complete(
        self, session_id: str, session_data: dict[str, Any] | None = None
    ) -> OnboardingSession:
        """Merge final data and mark the session completed."""
        return await self.apply(session_id, CompleteSession(session_data=session_data or {}))

    async def apply(self, session_id: str, write: SessionWrite) -> OnboardingSession:
        """Apply an advance or complete write to an existing session.

        Args:
            session_id: The session row ID.
            write: The tagged write operation.

        Returns:
            The session as stored after the write.

        Raises:
            NotFoundError: If the session does not exist.
            DatabaseError: If the read or the update fails.
        """
        current = await self._get_by_id(session_id)
        if current is None:
            raise NotFoundError("Onboarding session", session_id)

        now = datetime.now(UTC).isoformat()
        merged = {**current.session_data, **write.session_data}
        update: dict[str, Any] = {"session_data": merged, "updated_at": now}

        if isinstance(write, CompleteSession):
            update["status"] = OnboardingStatus.COMPLETED.value
            update["current_step"] = LAST_STEP.value
            update["completed_at"] = now
            update["progress_percentage"] = progress_for(LAST_STEP, OnboardingStatus.COMPLETED)
        else:
            update["current_step"] = write.step
            update["progress_percentage"] = progress_for(write.step, current.status)
            if write.company_id and not current.company_id:
                update["company_id"] = write.company_id

        rows = self._run(
            lambda: self._db.table(TABLE).update(update).eq("id", session_id).execute(),
            "update",
            session_id=session_id,
        )
        if not rows:
            raise NotFoundError("Onboarding session", session_id)

        logger.info(
            "Onboarding session written",
            extra={
                "session_id": session_id,
                "kind": write.kind,
                "current_step": update["current_step"],
            },
        )
        return self._parse(rows[0])

    async def get_for_user(self, user_id: str) -> OnboardingSession | None:
        rows = self._run(
            lambda: self._db.table(TABLE).select("*").eq("user_id", user_id).limit(1).execute(),
            "select",
            user_id=user_id,
        )
        return self._parse(rows[0]) if rows else None

    async def list_for_company(self, company_id: str) -> list[OnboardingSession]:
        """All sessions of a company's users, newest first."""
        rows = self._run(
            lambda: self._db.table(TABLE)
            .select("*")
            .eq("company_id", company_id)
            .order("created_at", desc=True)
            .execute(),
            "select",
            company_id=company_id,
        )
        return [self._parse(row) for row in rows]

    # --- Private helpers ---

    async def _create(self, user_id: str, write: CreateSession) -> OnboardingSession:
        now = datetime.now(UTC).isoformat()
        new_row: dict[str, Any] = {
            "user_id": user_id,
            "company_id": write.company_id,
            "current_step": 1,
            "status": OnboardingStatus.IN_PROGRESS.value,
            "session_data": {},
            "progress_percentage": progress_for(1, OnboardingStatus.IN_PROGRESS),
            "started_at": now,
            "updated_at": now,
        }
        rows = self._run(
            lambda: self._db.table(TABLE).insert(new_row).execute(),
            "insert",
            user_id=user_id,
        )
        if not rows:
            raise DatabaseError("Onboarding session insert returned no row")

        logger.info(
            "Onboarding session created",
            extra={"user_id": user_id, "company_id": write.company_id},
        )
        return self._parse(rows[0])

    async def _get_by_id(self, session_id: str) -> OnboardingSession | None:
        rows = self._run(
            lambda: self._db.table(TABLE).select("*").eq("id", session_id).limit(1).execute(),
            "select",
            session_id=session_id,
        )
        return self._parse(rows[0]) if rows else None

    def _run(self, query: Any, operation: str, **context: Any) -> list[dict[str, Any]]:
        """Execute a query through the circuit breaker and return its rows."""
        try:
            with supabase_circuit_breaker.guard():
                response = query()
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            logger.exception(
                "Onboarding session %s failed", operation, extra={"operation": operation, **context}
            )
            raise DatabaseError(f"Failed to {operation} onboarding session: {e}") from e
        return cast(list[dict[str, Any]], (response.data if response else None) or [])

    def _parse(self, data: dict[str, Any]) -> OnboardingSession:
        """Parse raw DB row into OnboardingSession model."""
        company_id = data.get("company_id")
        return OnboardingSession(
            id=str(data["id"]),
            user_id=str(data["user_id"]),
            company_id=str(company_id) if company_id else None,
            current_step=data.get("current_step") or 1,
            status=data.get("status") or OnboardingStatus.IN_PROGRESS,
            session_data=data.get("session_data") or {},
            progress_percentage=data.get("progress_percentage") or 0,
            started_at=data.get("started_at"),
            updated_at=data.get("updated_at"),
            completed_at=data.get("completed_at"),
        )
