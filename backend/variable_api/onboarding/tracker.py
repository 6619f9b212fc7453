"""Read-only onboarding progress views: admin tracker and post-auth routing."""

import logging

from variable_api.onboarding.models import OnboardingStatus, OnboardingSummary
from variable_api.onboarding.session_store import OnboardingSessionStore

logger = logging.getLogger(__name__)


class OnboardingTracker:
    """Summarizes onboarding progress across a company's users."""

    def __init__(self, store: OnboardingSessionStore | None = None) -> None:
        self._store = store or OnboardingSessionStore()

    async def summarize_company(self, company_id: str) -> OnboardingSummary:
        """Count sessions by status for a company.

        Overall progress is the share of completed sessions, 0 when the
        company has none.
        """
        sessions = await self._store.list_for_company(company_id)
        counts = {status: 0 for status in OnboardingStatus}
        for session in sessions:
            counts[session.status] += 1

        total = len(sessions)
        completed = counts[OnboardingStatus.COMPLETED]
        return OnboardingSummary(
            company_id=company_id,
            total=total,
            completed=completed,
            in_progress=counts[OnboardingStatus.IN_PROGRESS],
            not_started=counts[OnboardingStatus.NOT_STARTED],
            overall_progress=round(completed / total * 100) if total else 0,
            sessions=sessions,
        )

    async def get_routing_decision(self, user_id: str) -> str:
        """Where to send a user after sign-in.

        Returns:
            ``dashboard`` once onboarding is completed, else ``onboarding``.
        """
        session = await self._store.get_for_user(user_id)
        if session and session.is_complete:
            return "dashboard"
        return "onboarding"
