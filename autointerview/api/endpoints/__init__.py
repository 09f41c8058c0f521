"""
API endpoint modules for AutoInterview
"""

from autointerview.api.endpoints import session, devices

__all__ = ["session", "devices"]
