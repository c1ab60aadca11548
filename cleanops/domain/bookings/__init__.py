"""Booking domain - upcoming and archived bookings, public booking form, customer portal"""

from .router import router

__all__ = ["router"]
