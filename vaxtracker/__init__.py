"""
VaxTracker

A FastAPI-based vaccination appointment booking service: slot availability,
double-booking-safe reservations, dose sequencing and a mock QR payment flow.
"""

__version__ = "1.0.0"
