"""
Farmer-facing message templates.

Every NotificationKind has exactly one renderer; unknown kinds fall back to a
generic farm update. Rendering is pure and never raises.
"""
from templates.notifications import RENDERERS, format_notification, render_event
