"""Inbox Agent - automated agent runtime for a multi-tenant inbox"""

__version__ = "1.0.0"
