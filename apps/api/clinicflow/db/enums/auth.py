"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """Staff roles within an organization."""

    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


ROLES_CAN_MANAGE_AUTOMATION = frozenset({Role.ADMIN, Role.MANAGER})
