"""
HTTP API for Sync Autoreboot.

Provides the reference time endpoint that watchdog nodes poll.
"""

from .time_server import TimeRequestHandler, TimeServer

__all__ = [
    'TimeRequestHandler',
    'TimeServer',
]
