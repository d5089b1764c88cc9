"""
Usergate - user management with group-based capability permissions.
"""

__version__ = "0.1.0"
