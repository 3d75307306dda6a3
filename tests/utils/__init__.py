"""
Test utilities package.

Provides frame builders and mock robot servers for testing urclient.
"""

from .tcp import MockDashboardServer, MockPrimaryServer, ThreadedDashboardServer, free_port, wait_until

__all__ = [
    "MockDashboardServer",
    "MockPrimaryServer",
    "ThreadedDashboardServer",
    "free_port",
    "wait_until",
]
