"""Spend Monitor - Alert on cloud spend threshold breaches.

This package compares observed spend against a configured threshold and
delivers alerts over email, SMS and mobile push, with retries, a circuit
breaker and push endpoint health monitoring around the notification provider.
"""

from spend_monitor.__main__ import main

__all__ = ["main"]
