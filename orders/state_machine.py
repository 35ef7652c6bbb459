from typing import Dict, FrozenSet

from orders.models import DeliveryRequest, DeliveryStatus


class DeliveryStateError(Exception):
    """Raised when an invalid status transition is observed."""
    pass


# pending -> accepted -> shopping -> delivering -> completed
# cancelled is reachable from every non-terminal state
TRANSITIONS: Dict[DeliveryStatus, FrozenSet[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.ACCEPTED, DeliveryStatus.CANCELLED}),
    DeliveryStatus.ACCEPTED: frozenset({DeliveryStatus.SHOPPING, DeliveryStatus.CANCELLED}),
    DeliveryStatus.SHOPPING: frozenset({DeliveryStatus.DELIVERING, DeliveryStatus.CANCELLED}),
    DeliveryStatus.DELIVERING: frozenset({DeliveryStatus.COMPLETED, DeliveryStatus.CANCELLED}),
    DeliveryStatus.COMPLETED: frozenset(),
    DeliveryStatus.CANCELLED: frozenset(),
}

# statuses with a driver on the road, the only ones worth tracking
TRACKABLE = frozenset({DeliveryStatus.ACCEPTED, DeliveryStatus.SHOPPING, DeliveryStatus.DELIVERING})

ORDER = [
    DeliveryStatus.PENDING,
    DeliveryStatus.ACCEPTED,
    DeliveryStatus.SHOPPING,
    DeliveryStatus.DELIVERING,
    DeliveryStatus.COMPLETED,
]


def is_terminal(status: DeliveryStatus) -> bool:
    return not TRANSITIONS[status]


def is_trackable(status: DeliveryStatus) -> bool:
    return status in TRACKABLE


def can_transition(current: DeliveryStatus, new: DeliveryStatus) -> bool:
    """
    True if the backend could have moved `current` to `new`, possibly through
    intermediate states we never saw (polls are 5 s apart, a driver can
    accept and start shopping in between).
    """
    if current == new:
        return True
    if is_terminal(current):
        return False
    if new == DeliveryStatus.CANCELLED:
        return True
    if current not in ORDER or new not in ORDER:
        return False
    return ORDER.index(new) > ORDER.index(current)


def check_transition(current: DeliveryRequest, new: DeliveryRequest) -> DeliveryRequest:
    """
    Validates that `new` is a plausible successor of `current` for the same
    request. Returns `new`, raises DeliveryStateError otherwise.
    """
    if current.id != new.id:
        raise DeliveryStateError(f"Request {new.id} cannot replace request {current.id}")

    if not can_transition(current.status, new.status):
        raise DeliveryStateError(
            f"Request {new.id} cannot go from {current.status.value} to {new.status.value}"
        )
    return new
