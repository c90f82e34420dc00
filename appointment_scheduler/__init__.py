"""
Appointment Scheduling Core

A FastAPI-based service for provider availability and conflict-free
appointment booking. Provider schedules are serialized per provider so a
time range can never be booked twice.
"""

__version__ = "1.0.0"
