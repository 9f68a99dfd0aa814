"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_service import BookingService, ScheduleStoreProtocol
from .schedule_view import DayView, ScheduleView, ViewMode

__all__ = ["BookingService", "DayView", "ScheduleStoreProtocol", "ScheduleView", "ViewMode"]
