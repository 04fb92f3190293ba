"""
Delivery phase enumeration.
"""

import enum


class DeliveryPhase(str, enum.Enum):
    """
    Delivery phase, derived from the delivery's timestamps.

    Phase flow:
        UNASSIGNED → ASSIGNED → STARTED → COMPLETED
    Never stored; see Delivery.phase.
    """
    UNASSIGNED = "UNASSIGNED"
    ASSIGNED = "ASSIGNED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
