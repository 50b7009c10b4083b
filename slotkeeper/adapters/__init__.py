"""
Adapters layer - Storage backends for the booking service.
"""

from .memory_store import InMemoryBookingStore
from .supabase_store import SupabaseBookingStore

__all__ = ["InMemoryBookingStore", "SupabaseBookingStore"]
