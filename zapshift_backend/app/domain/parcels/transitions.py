"""
Delivery status transition policy.

Two modes:
    open   - any status string is accepted at status update and rejection;
             assignment is refused only for terminal parcels
    strict - only the edges in STRICT_TRANSITIONS / REJECTION_EDGES

Rider release on status update is a separate policy:
    always        - every status update frees the rider
    terminal_only - only a terminal status frees the rider
"""

from typing import Dict, FrozenSet

from zapshift_backend.app.core.exceptions import ValidationError
from zapshift_backend.app.models.parcel_enums import ParcelStatus, TERMINAL_STATUSES

OPEN = "open"
STRICT = "strict"

RELEASE_ALWAYS = "always"
RELEASE_TERMINAL_ONLY = "terminal_only"

STRICT_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    ParcelStatus.UNPAID.value: frozenset({ParcelStatus.PENDING_PICKUP.value}),
    ParcelStatus.PENDING_PICKUP.value: frozenset({ParcelStatus.RIDER_ASSIGNED.value}),
    ParcelStatus.RIDER_ASSIGNED.value: frozenset({
        ParcelStatus.RIDER_ARRIVING.value,
        ParcelStatus.DELIVERED.value,
    }),
    ParcelStatus.RIDER_ARRIVING.value: frozenset({ParcelStatus.DELIVERED.value}),
    ParcelStatus.DELIVERED.value: frozenset(),
}

REJECTION_EDGES: Dict[str, FrozenSet[str]] = {
    ParcelStatus.RIDER_ASSIGNED.value: frozenset({ParcelStatus.PENDING_PICKUP.value}),
    ParcelStatus.RIDER_ARRIVING.value: frozenset({ParcelStatus.PENDING_PICKUP.value}),
}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


class TransitionPolicy:

    def __init__(self, mode: str = OPEN, release_policy: str = RELEASE_ALWAYS):
        if mode not in (OPEN, STRICT):
            raise ValueError(f"Unknown status transition mode: {mode}")
        if release_policy not in (RELEASE_ALWAYS, RELEASE_TERMINAL_ONLY):
            raise ValueError(f"Unknown rider release policy: {release_policy}")
        self.mode = mode
        self.release_policy = release_policy

    @property
    def strict(self) -> bool:
        return self.mode == STRICT

    def check_payment(self, current: str) -> None:
        if self.strict:
            self._require_edge(current, ParcelStatus.PENDING_PICKUP.value, STRICT_TRANSITIONS)

    def check_assignment(self, current: str) -> None:
        if is_terminal(current):
            raise ValidationError(
                f"Cannot assign a rider to a parcel in terminal status '{current}'",
                details={"current_status": current},
            )
        if self.strict and current != ParcelStatus.PENDING_PICKUP.value:
            raise ValidationError(
                f"Riders can only be assigned to '{ParcelStatus.PENDING_PICKUP.value}' parcels",
                details={"current_status": current},
            )

    def check_update(self, current: str, new: str) -> None:
        if self.strict:
            self._require_edge(current, new, STRICT_TRANSITIONS)

    def check_rejection(self, current: str, new: str) -> None:
        if self.strict:
            self._require_edge(current, new, REJECTION_EDGES)

    def releases_rider(self, new_status: str) -> bool:
        if self.release_policy == RELEASE_ALWAYS:
            return True
        return is_terminal(new_status)

    @staticmethod
    def _require_edge(current: str, new: str, table: Dict[str, FrozenSet[str]]) -> None:
        if new not in table.get(current, frozenset()):
            raise ValidationError(
                f"Transition '{current}' -> '{new}' is not allowed",
                details={"current_status": current, "requested_status": new},
            )
