"""External integration adapters."""

from .payments import StripeGateway, get_gateway
from .supabase_auth import SupabaseAuthAdmin

__all__ = [
    "StripeGateway",
    "get_gateway",
    "SupabaseAuthAdmin",
]
