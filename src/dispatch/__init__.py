"""
Clinic notification dispatch.

Time-windowed WhatsApp notifications (reminders, satisfaction surveys,
upsell follow-ups, campaigns) with at-most-once delivery per trigger
condition under at-least-once invocation.
"""

__version__ = "0.1.0"
