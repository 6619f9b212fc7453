"""Admin API routes for tracking company onboarding.

Company admins see their own company; platform admins see any company.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from variable_api.api.deps import PLATFORM_ADMIN_ROLE, AdminUser
from variable_api.onboarding.models import OnboardingSummary
from variable_api.onboarding.tracker import OnboardingTracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_tracker() -> OnboardingTracker:
    return OnboardingTracker()


@router.get("/companies/{company_id}/onboarding", response_model=OnboardingSummary)
async def get_company_onboarding(company_id: str, current_user: AdminUser) -> OnboardingSummary:
    """Onboarding progress of every user in a company."""
    if current_user.role != PLATFORM_ADMIN_ROLE and current_user.company_id != company_id:
        logger.warning(
            "Admin requested another company's onboarding",
            extra={"user_id": current_user.id, "company_id": company_id},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions for this action",
        )
    return await _get_tracker().summarize_company(company_id)
