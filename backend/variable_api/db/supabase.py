"""Supabase client module for database operations."""

import logging

from supabase import Client, create_client

from variable_api.core.circuit_breaker import CircuitBreaker
from variable_api.core.config import settings
from variable_api.core.exceptions import DatabaseError

logger = logging.getLogger(__name__)

supabase_circuit_breaker = CircuitBreaker("supabase")


class SupabaseClient:
    """Singleton Supabase client for backend operations.

    Uses the service role key: row-level security is bypassed, so every
    query issued through this client must filter by the caller's ids.
    """

    _client: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        """Get or create the Supabase client singleton.

        Returns:
            Initialized Supabase client.

        Raises:
            DatabaseError: If client initialization fails.
        """
        if cls._client is None:
            try:
                cls._client = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                logger.exception("Failed to initialize Supabase client")
                raise DatabaseError(f"Failed to initialize database connection: {e}") from e
        return cls._client

    @classmethod
    def reset_client(cls) -> None:
        """Reset the client singleton (useful for testing)."""
        cls._client = None
