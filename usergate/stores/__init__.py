"""
Persistence layer over the database connector.
"""

from usergate.stores.groups import GroupStore, ADMIN_GROUP_NAME
from usergate.stores.users import UserStore
from usergate.stores.settings import SettingsStore, SETTING_KEYS

__all__ = [
    "GroupStore",
    "ADMIN_GROUP_NAME",
    "UserStore",
    "SettingsStore",
    "SETTING_KEYS",
]
