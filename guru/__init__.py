"""
Guru — Proactive Nudge Engine
Watches the Dasha timeline, runs the trigger rules, and reaches out first.
"""

__version__ = "0.3.0"
