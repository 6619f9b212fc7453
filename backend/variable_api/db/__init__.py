"""Database clients for Variable."""

from variable_api.db.supabase import SupabaseClient, supabase_circuit_breaker

__all__ = ["SupabaseClient", "supabase_circuit_breaker"]
