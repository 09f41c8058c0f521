"""
AutoInterview - Unattended timed video-interview sessions

Narrates each question, records a time-boxed answer per question,
uploads answers as they complete and lets the candidate review them.
"""

__version__ = "0.1.0"
__author__ = "AutoInterview Team"
