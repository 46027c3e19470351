"""API routers for the NGO operations core."""

from . import dashboard, documents, reminders, work_items

__all__ = ["dashboard", "documents", "reminders", "work_items"]
