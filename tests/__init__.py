"""
Test suite for the Appointment Scheduling Core.

Contains unit and integration tests for availability, conflict detection,
the booking lifecycle and the HTTP surface.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
