"""
Service layer helpers that orchestrate storage adapters and domain logic.
"""

from .booking_service import BookingService, BookingStore, ServiceResponse

__all__ = ["BookingService", "BookingStore", "ServiceResponse"]
