"""
Test suite for the VaxTracker booking service.

Contains unit and integration tests for slot generation, booking, payments
and the admin workflow.
"""
import os

# Set environment for testing before the application settings are imported
os.environ["TESTING"] = "1"
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("PASSWORD_SCRYPT_ROUNDS", "8")
