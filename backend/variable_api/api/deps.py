"""FastAPI dependencies for authentication and common operations."""

import logging
from dataclasses import dataclass
from typing import Annotated, Any, cast

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from variable_api.core.exceptions import AuthenticationError, AuthorizationError, NotFoundError
from variable_api.db.supabase import SupabaseClient

logger = logging.getLogger(__name__)

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Any:
    """Extract and validate the current user from a Supabase JWT.

    Args:
        credentials: HTTP Bearer token credentials.

    Returns:
        Validated user object from Supabase auth.

    Raises:
        HTTPException: If authentication fails.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        client = SupabaseClient.get_client()
        response = client.auth.get_user(credentials.credentials)

        if response is None or response.user is None:
            raise AuthenticationError("Invalid authentication token")

        return response.user

    except AuthenticationError as e:
        logger.warning("AUTH: %s", e.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    except Exception as e:
        logger.exception("AUTH: Unexpected error during token validation")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_user_profile(user_id: str) -> dict[str, Any]:
    """Fetch the caller's profile row (role and company).

    Raises:
        NotFoundError: If the user has no profile.
    """
    client = SupabaseClient.get_client()
    response = (
        client.table("profiles")
        .select("id, role, company_id")
        .eq("id", user_id)
        .maybe_single()
        .execute()
    )
    if not response or not response.data:
        raise NotFoundError("Profile", user_id)
    return cast(dict[str, Any], response.data)


@dataclass(frozen=True)
class Principal:
    """An authenticated user with their profile role and company."""

    id: str
    role: str
    company_id: str | None


def require_role(required_roles: list[str]) -> Any:
    """Create a dependency that requires specific profile roles.

    Resolves to a ``Principal`` built from the caller's profile.

    Args:
        required_roles: List of allowed role names.

    Returns:
        Dependency function that validates user roles.
    """

    async def role_checker(
        current_user: Annotated[Any, Depends(get_current_user)],
    ) -> Principal:
        try:
            profile = await get_user_profile(current_user.id)
            if profile.get("role", "user") not in required_roles:
                raise AuthorizationError("Insufficient permissions for this action")
            return Principal(
                id=str(current_user.id),
                role=str(profile.get("role")),
                company_id=profile.get("company_id"),
            )

        except (AuthorizationError, NotFoundError) as e:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this action",
            ) from e
        except Exception as e:
            logger.exception("Role check error")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error checking permissions",
            ) from e

    return role_checker


PLATFORM_ADMIN_ROLE = "platform_admin"
COMPANY_ADMIN_ROLES = ["admin", PLATFORM_ADMIN_ROLE]

# Type aliases for common dependency patterns
CurrentUser = Annotated[Any, Depends(get_current_user)]
AdminUser = Annotated[Principal, Depends(require_role(COMPANY_ADMIN_ROLES))]
