"""
Pocket Calendar.

Google Calendar client with a self-healing authenticated session.
"""

__version__ = "0.1.0"
