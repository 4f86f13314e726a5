"""Rudder: recurring tasks and push reminders."""

__version__ = "0.1.0"
