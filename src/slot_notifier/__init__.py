"""Slot notifier: watches YCLIENTS for newly opened appointment slots."""

__version__ = "0.1.0"
