"""
Authorization tables for parcel and delivery operations.

Role requirements are data: each operation maps to the set of roles allowed
to invoke it. Ownership rules (sender, receiver, assigned driver) are
separate checks applied after the role check and before any write.
"""

import enum
from typing import FrozenSet, Dict

from backend.app.core.exceptions import InsufficientPermissionsError
from backend.app.models.enums import UserRole


class Operation(str, enum.Enum):
    """Operations exposed by the lifecycle managers."""
    PARCEL_CREATE = "parcel.create"
    PARCEL_READ = "parcel.read"
    PARCEL_UPDATE_STATUS = "parcel.update_status"
    PARCEL_DELETE = "parcel.delete"

    DELIVERY_CREATE = "delivery.create"
    DELIVERY_READ = "delivery.read"
    DELIVERY_ASSIGN = "delivery.assign"
    DELIVERY_START = "delivery.start"
    DELIVERY_COMPLETE = "delivery.complete"
    DELIVERY_UPDATE_LOCATION = "delivery.update_location"


ALL_ROLES: FrozenSet[UserRole] = frozenset(UserRole)

OPERATION_ROLES: Dict[Operation, FrozenSet[UserRole]] = {
    Operation.PARCEL_CREATE: ALL_ROLES,
    Operation.PARCEL_READ: ALL_ROLES,
    Operation.PARCEL_UPDATE_STATUS: frozenset({UserRole.ADMIN, UserRole.DRIVER}),
    Operation.PARCEL_DELETE: ALL_ROLES,

    Operation.DELIVERY_CREATE: frozenset({UserRole.ADMIN}),
    Operation.DELIVERY_READ: ALL_ROLES,
    Operation.DELIVERY_ASSIGN: frozenset({UserRole.ADMIN}),
    Operation.DELIVERY_START: frozenset({UserRole.DRIVER}),
    Operation.DELIVERY_COMPLETE: frozenset({UserRole.DRIVER}),
    Operation.DELIVERY_UPDATE_LOCATION: frozenset({UserRole.DRIVER}),
}

# Roles that see every parcel; everyone else is scoped to parcels they
# send or receive.
UNRESTRICTED_PARCEL_READERS: FrozenSet[UserRole] = frozenset({UserRole.ADMIN, UserRole.DRIVER})


def role_of(current_user: dict) -> UserRole:
    return UserRole(current_user["role"])


def is_permitted(operation: Operation, role: UserRole) -> bool:
    return role in OPERATION_ROLES[operation]


def authorize(operation: Operation, current_user: dict) -> UserRole:
    """
    Check the role table for an operation.

    Returns:
        The caller's role

    Raises:
        InsufficientPermissionsError: role not permitted for the operation
    """
    role = role_of(current_user)
    if not is_permitted(operation, role):
        allowed = sorted(r.value for r in OPERATION_ROLES[operation])
        raise InsufficientPermissionsError(
            message=f"Access denied. Required role: {', '.join(allowed)}",
            details={"operation": operation.value, "role": role.value}
        )
    return role


def can_view_parcel(parcel, current_user: dict) -> bool:
    """Admins and drivers see all parcels; customers only their own."""
    if role_of(current_user) in UNRESTRICTED_PARCEL_READERS:
        return True
    user_id = current_user["user_id"]
    return user_id in (parcel.sender_id, parcel.receiver_id)


def ensure_can_view_parcel(parcel, current_user: dict) -> None:
    if not can_view_parcel(parcel, current_user):
        raise InsufficientPermissionsError("Access denied")


def ensure_sender(parcel, current_user: dict) -> None:
    if parcel.sender_id != current_user["user_id"]:
        raise InsufficientPermissionsError("Only the sender can delete this parcel")


def ensure_assigned_driver(delivery, current_user: dict, action: str) -> None:
    if delivery.driver_id is None or delivery.driver_id != current_user["user_id"]:
        raise InsufficientPermissionsError(f"Only assigned driver can {action}")
