"""
User roles enumeration.

Defines the role types for the parcel tracking system.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Creates deliveries and assigns drivers
        CUSTOMER: Sends and receives parcels (default role)
        DRIVER: Executes deliveries assigned to them
    """
    ADMIN = "ADMIN"
    CUSTOMER = "CUSTOMER"
    DRIVER = "DRIVER"
