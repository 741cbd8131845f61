"""
Parcel State Machine Tests.

Covers intake, payment, assignment, status updates, rejection, the
transition/release policies and rollback of coupled parcel+rider updates.
"""

import re
import pytest
from sqlalchemy.exc import OperationalError

from zapshift_backend.app.core.exceptions import (
    ConflictError,
    ConsistencyError,
    NotFoundError,
    ValidationError,
)
from zapshift_backend.app.domain.parcels import state_machine as state_machine_module
from zapshift_backend.app.domain.parcels.state_machine import ParcelStateMachine
from zapshift_backend.app.domain.parcels.transitions import (
    TransitionPolicy,
    STRICT,
    RELEASE_TERMINAL_ONLY,
)
from zapshift_backend.app.models.parcel import Parcel
from zapshift_backend.app.models.parcel_enums import ParcelStatus, PaymentStatus
from zapshift_backend.app.models.rider import Rider
from zapshift_backend.app.models.rider_enums import RiderStatus, WorkStatus
from zapshift_backend.app.services.audit import get_audit_trail, AuditAction
from zapshift_backend.app.services.rider_assignment import RiderAssignmentManager
from zapshift_backend.app.services.tracking_ledger import TrackingLedger

TRACKING_ID_PATTERN = re.compile(r"^ZAP-[0-9A-F]{10}$")


async def statuses(ledger, tracking_id):
    return [e.status for e in await ledger.list_by_tracking(tracking_id)]


# Intake

@pytest.mark.asyncio
async def test_create_issues_tracking_id_and_logs(make_parcel, ledger):
    parcel = await make_parcel()

    assert TRACKING_ID_PATTERN.match(parcel.tracking_id)
    assert parcel.delivery_status == ParcelStatus.UNPAID.value
    assert parcel.payment_status == PaymentStatus.UNPAID
    assert parcel.rider_id is None
    assert await statuses(ledger, parcel.tracking_id) == ["parcel-created"]


@pytest.mark.asyncio
async def test_create_regenerates_on_collision(make_parcel, monkeypatch):
    ids = iter(["ZAP-AAAAAAAAAA", "ZAP-AAAAAAAAAA", "ZAP-BBBBBBBBBB"])
    monkeypatch.setattr(state_machine_module, "generate_tracking_id", lambda: next(ids))

    first = await make_parcel()
    second = await make_parcel()

    assert first.tracking_id == "ZAP-AAAAAAAAAA"
    assert second.tracking_id == "ZAP-BBBBBBBBBB"


@pytest.mark.asyncio
async def test_create_gives_up_after_repeated_collisions(make_parcel, monkeypatch):
    monkeypatch.setattr(state_machine_module, "generate_tracking_id", lambda: "ZAP-AAAAAAAAAA")
    await make_parcel()

    with pytest.raises(ConflictError):
        await make_parcel()


@pytest.mark.asyncio
async def test_create_rejects_missing_fields(state_machine, payload_factory):
    data = payload_factory()
    del data["receiver_address"]

    with pytest.raises(ValidationError) as exc_info:
        await state_machine.create(data)

    assert "receiver_address" in exc_info.value.details["missing"]


# Payment

@pytest.mark.asyncio
async def test_mark_paid_moves_to_pending_pickup(make_parcel, state_machine, ledger, db_session):
    parcel = await make_parcel()

    await state_machine.mark_paid(parcel.id, parcel.tracking_id)
    await db_session.commit()

    assert parcel.delivery_status == ParcelStatus.PENDING_PICKUP.value
    assert parcel.payment_status == PaymentStatus.PAID
    assert await statuses(ledger, parcel.tracking_id) == ["parcel-created", "parcel-paid"]


@pytest.mark.asyncio
async def test_mark_paid_keeps_own_tracking_id(make_parcel, state_machine, ledger, db_session):
    parcel = await make_parcel()
    original = parcel.tracking_id

    await state_machine.mark_paid(parcel.id, "ZAP-0000000000")
    await db_session.commit()

    assert parcel.tracking_id == original
    assert await ledger.list_by_tracking("ZAP-0000000000") == []


@pytest.mark.asyncio
async def test_mark_paid_unknown_parcel(state_machine):
    with pytest.raises(NotFoundError):
        await state_machine.mark_paid(12345, "ZAP-0000000000")


@pytest.mark.asyncio
async def test_mark_paid_twice_conflicts(paid_parcel, state_machine):
    parcel = await paid_parcel()

    with pytest.raises(ConflictError):
        await state_machine.mark_paid(parcel.id, parcel.tracking_id)


# Assignment

@pytest.mark.asyncio
async def test_assign_rider_couples_parcel_and_rider(paid_parcel, make_rider, state_machine, ledger, refetch):
    parcel = await paid_parcel()
    rider = await make_rider()

    await state_machine.assign_rider(parcel.id, rider.id)

    stored_parcel = await refetch(Parcel, parcel.id)
    stored_rider = await refetch(Rider, rider.id)
    assert stored_parcel.delivery_status == ParcelStatus.RIDER_ASSIGNED.value
    assert stored_parcel.rider_id == rider.id
    assert stored_parcel.rider_name == rider.name
    assert stored_parcel.rider_email == rider.email
    assert stored_parcel.rider_phone == rider.phone
    assert stored_rider.work_status == WorkStatus.IN_DELIVERY
    assert (await statuses(ledger, parcel.tracking_id))[-1] == "driver-assigned"


@pytest.mark.asyncio
async def test_assign_unknown_rider_leaves_parcel_untouched(paid_parcel, state_machine, ledger, refetch):
    parcel = await paid_parcel()
    parcel_id, tracking_id = parcel.id, parcel.tracking_id

    with pytest.raises(NotFoundError):
        await state_machine.assign_rider(parcel_id, 999)

    stored = await refetch(Parcel, parcel_id)
    assert stored.delivery_status == ParcelStatus.PENDING_PICKUP.value
    assert stored.rider_id is None
    assert "driver-assigned" not in await statuses(ledger, tracking_id)


@pytest.mark.asyncio
async def test_assign_unknown_parcel(make_rider, state_machine):
    rider = await make_rider()

    with pytest.raises(NotFoundError):
        await state_machine.assign_rider(999, rider.id)


@pytest.mark.asyncio
async def test_assign_requires_approved_rider(paid_parcel, make_rider, state_machine):
    parcel = await paid_parcel()
    rider = await make_rider(status=RiderStatus.PENDING)

    with pytest.raises(ValidationError):
        await state_machine.assign_rider(parcel.id, rider.id)


@pytest.mark.asyncio
async def test_assign_busy_rider_conflicts(paid_parcel, make_rider, state_machine, refetch):
    first = await paid_parcel()
    second = await paid_parcel()
    second_id = second.id
    rider = await make_rider()
    await state_machine.assign_rider(first.id, rider.id)

    with pytest.raises(ConflictError):
        await state_machine.assign_rider(second_id, rider.id)

    stored = await refetch(Parcel, second_id)
    assert stored.delivery_status == ParcelStatus.PENDING_PICKUP.value


@pytest.mark.asyncio
async def test_reassignment_releases_previous_rider(paid_parcel, make_rider, state_machine, refetch):
    parcel = await paid_parcel()
    first = await make_rider(email="first@test.com")
    second = await make_rider(email="second@test.com")

    await state_machine.assign_rider(parcel.id, first.id)
    await state_machine.assign_rider(parcel.id, second.id)

    assert (await refetch(Rider, first.id)).work_status == WorkStatus.AVAILABLE
    assert (await refetch(Rider, second.id)).work_status == WorkStatus.IN_DELIVERY
    assert (await refetch(Parcel, parcel.id)).rider_id == second.id


@pytest.mark.asyncio
async def test_cannot_assign_delivered_parcel(paid_parcel, make_rider, state_machine):
    parcel = await paid_parcel()
    rider = await make_rider()
    other = await make_rider(email="other@test.com")
    await state_machine.assign_rider(parcel.id, rider.id)
    await state_machine.update_status(parcel.id, ParcelStatus.DELIVERED.value, rider.id)

    with pytest.raises(ValidationError):
        await state_machine.assign_rider(parcel.id, other.id)


# Status updates

@pytest.mark.asyncio
async def test_delivery_releases_rider(paid_parcel, make_rider, state_machine, ledger, refetch):
    parcel = await paid_parcel()
    tracking_id = parcel.tracking_id
    rider = await make_rider()

    await state_machine.assign_rider(parcel.id, rider.id)
    await state_machine.update_status(parcel.id, "delivered", rider.id)

    stored = await refetch(Parcel, parcel.id)
    assert stored.delivery_status == "delivered"
    assert stored.tracking_id == tracking_id
    assert (await refetch(Rider, rider.id)).work_status == WorkStatus.AVAILABLE
    assert (await statuses(ledger, tracking_id))[-2:] == ["driver-assigned", "delivered"]


@pytest.mark.asyncio
async def test_default_policy_releases_rider_on_non_terminal_update(paid_parcel, make_rider, state_machine, refetch):
    """Default policy frees the rider on every status update, terminal or not."""
    parcel = await paid_parcel()
    rider = await make_rider()
    await state_machine.assign_rider(parcel.id, rider.id)

    await state_machine.update_status(parcel.id, ParcelStatus.RIDER_ARRIVING.value, rider.id)

    assert (await refetch(Parcel, parcel.id)).delivery_status == ParcelStatus.RIDER_ARRIVING.value
    assert (await refetch(Rider, rider.id)).work_status == WorkStatus.AVAILABLE


@pytest.mark.asyncio
async def test_terminal_only_policy_keeps_rider_until_delivery(paid_parcel, make_rider, db_session, refetch):
    """terminal_only diverges from the default: rider stays busy until delivered."""
    machine = ParcelStateMachine(
        db_session,
        TrackingLedger(db_session),
        RiderAssignmentManager(db_session),
        policy=TransitionPolicy(release_policy=RELEASE_TERMINAL_ONLY),
    )
    parcel = await paid_parcel()
    rider = await make_rider()
    await machine.assign_rider(parcel.id, rider.id)

    await machine.update_status(parcel.id, ParcelStatus.RIDER_ARRIVING.value, rider.id)
    assert (await refetch(Rider, rider.id)).work_status == WorkStatus.IN_DELIVERY

    await machine.update_status(parcel.id, ParcelStatus.DELIVERED.value, rider.id)
    assert (await refetch(Rider, rider.id)).work_status == WorkStatus.AVAILABLE


@pytest.mark.asyncio
async def test_open_mode_accepts_custom_status(paid_parcel, make_rider, state_machine, ledger):
    parcel = await paid_parcel()
    rider = await make_rider()
    await state_machine.assign_rider(parcel.id, rider.id)

    updated = await state_machine.update_status(parcel.id, "parcel-picked-up", rider.id)

    assert updated.delivery_status == "parcel-picked-up"
    events = await ledger.list_by_tracking(parcel.tracking_id)
    assert events[-1].status == "parcel-picked-up"
    assert events[-1].details == "parcel picked up"


@pytest.mark.asyncio
async def test_update_by_unassigned_rider_is_refused(paid_parcel, make_rider, state_machine, refetch):
    parcel = await paid_parcel()
    rider = await make_rider()
    stranger = await make_rider(email="stranger@test.com", work_status=WorkStatus.IN_DELIVERY)
    parcel_id, stranger_id = parcel.id, stranger.id
    await state_machine.assign_rider(parcel_id, rider.id)

    with pytest.raises(ValidationError):
        await state_machine.update_status(parcel_id, "delivered", stranger_id)

    assert (await refetch(Parcel, parcel_id)).delivery_status == ParcelStatus.RIDER_ASSIGNED.value
    assert (await refetch(Rider, stranger_id)).work_status == WorkStatus.IN_DELIVERY


@pytest.mark.asyncio
async def test_update_unknown_parcel(make_rider, state_machine):
    rider = await make_rider()

    with pytest.raises(NotFoundError):
        await state_machine.update_status(999, "delivered", rider.id)


# Rejection

@pytest.mark.asyncio
async def test_reject_reverts_status_and_frees_rider(paid_parcel, make_rider, state_machine, ledger, refetch):
    parcel = await paid_parcel()
    rider = await make_rider()
    await state_machine.assign_rider(parcel.id, rider.id)

    await state_machine.reject_assignment(parcel.id, ParcelStatus.PENDING_PICKUP.value, rider.id)

    stored = await refetch(Parcel, parcel.id)
    assert stored.delivery_status == ParcelStatus.PENDING_PICKUP.value
    assert stored.rider_id is None
    assert stored.rider_email is None
    assert (await refetch(Rider, rider.id)).work_status == WorkStatus.AVAILABLE
    assert (await statuses(ledger, parcel.tracking_id))[-1] == ParcelStatus.PENDING_PICKUP.value


@pytest.mark.asyncio
async def test_reject_without_tracking(paid_parcel, make_rider, db_session, ledger):
    machine = ParcelStateMachine(
        db_session, ledger, RiderAssignmentManager(db_session),
        policy=TransitionPolicy(), track_rejections=False,
    )
    parcel = await paid_parcel()
    rider = await make_rider()
    await machine.assign_rider(parcel.id, rider.id)

    await machine.reject_assignment(parcel.id, ParcelStatus.PENDING_PICKUP.value, rider.id)

    assert (await statuses(ledger, parcel.tracking_id))[-1] == "driver-assigned"


@pytest.mark.asyncio
async def test_rejected_parcel_can_be_reassigned(paid_parcel, make_rider, state_machine, refetch):
    parcel = await paid_parcel()
    first = await make_rider(email="first@test.com")
    second = await make_rider(email="second@test.com")
    await state_machine.assign_rider(parcel.id, first.id)
    await state_machine.reject_assignment(parcel.id, ParcelStatus.PENDING_PICKUP.value, first.id)

    await state_machine.assign_rider(parcel.id, second.id)

    assert (await refetch(Parcel, parcel.id)).rider_id == second.id
    assert (await refetch(Rider, first.id)).work_status == WorkStatus.AVAILABLE


# Removal

@pytest.mark.asyncio
async def test_remove_releases_carrying_rider(paid_parcel, make_rider, state_machine, ledger, db_session, refetch):
    parcel = await paid_parcel()
    rider = await make_rider()
    parcel_id, rider_id, tracking_id = parcel.id, rider.id, parcel.tracking_id
    await state_machine.assign_rider(parcel_id, rider_id)

    await state_machine.remove(parcel_id, actor_email="admin@test.com")

    assert await refetch(Parcel, parcel_id) is None
    assert (await refetch(Rider, rider_id)).work_status == WorkStatus.AVAILABLE
    assert await statuses(ledger, tracking_id) == ["parcel-created", "parcel-paid", "driver-assigned"]

    trail = await get_audit_trail(db_session, target_type="parcel", target_id=parcel_id)
    assert [entry.action for entry in trail] == [AuditAction.PARCEL_REMOVED]
    assert trail[0].meta_data["released_rider_id"] == rider_id


@pytest.mark.asyncio
async def test_remove_delivered_parcel_leaves_rider_alone(paid_parcel, make_rider, state_machine, refetch):
    """The rider of a delivered parcel may already be carrying the next one."""
    delivered = await paid_parcel()
    next_parcel = await paid_parcel()
    rider = await make_rider()
    delivered_id, next_id, rider_id = delivered.id, next_parcel.id, rider.id
    await state_machine.assign_rider(delivered_id, rider_id)
    await state_machine.update_status(delivered_id, "delivered", rider_id)
    await state_machine.assign_rider(next_id, rider_id)

    await state_machine.remove(delivered_id)

    assert await refetch(Parcel, delivered_id) is None
    assert (await refetch(Rider, rider_id)).work_status == WorkStatus.IN_DELIVERY


@pytest.mark.asyncio
async def test_failed_release_keeps_parcel(paid_parcel, make_rider, state_machine, mocker, refetch):
    parcel = await paid_parcel()
    rider = await make_rider()
    parcel_id, rider_id = parcel.id, rider.id
    await state_machine.assign_rider(parcel_id, rider_id)
    mocker.patch.object(state_machine.riders, "release", side_effect=RuntimeError("rider store down"))

    with pytest.raises(RuntimeError):
        await state_machine.remove(parcel_id)

    assert (await refetch(Parcel, parcel_id)).rider_id == rider_id
    assert (await refetch(Rider, rider_id)).work_status == WorkStatus.IN_DELIVERY


@pytest.mark.asyncio
async def test_remove_unknown_parcel(state_machine):
    with pytest.raises(NotFoundError):
        await state_machine.remove(9999)


# Strict transitions

@pytest.fixture
def strict_machine(db_session, ledger):
    return ParcelStateMachine(
        db_session, ledger, RiderAssignmentManager(db_session),
        policy=TransitionPolicy(mode=STRICT),
    )


@pytest.mark.asyncio
async def test_strict_mode_follows_table(paid_parcel, make_rider, strict_machine):
    parcel = await paid_parcel()
    rider = await make_rider()
    parcel_id, rider_id = parcel.id, rider.id
    await strict_machine.assign_rider(parcel_id, rider_id)

    with pytest.raises(ValidationError):
        await strict_machine.update_status(parcel_id, "teleported", rider_id)

    updated = await strict_machine.update_status(parcel_id, ParcelStatus.RIDER_ARRIVING.value, rider_id)
    assert updated.delivery_status == ParcelStatus.RIDER_ARRIVING.value


@pytest.mark.asyncio
async def test_strict_mode_refuses_unpaid_assignment(make_parcel, make_rider, strict_machine):
    parcel = await make_parcel()
    rider = await make_rider()

    with pytest.raises(ValidationError):
        await strict_machine.assign_rider(parcel.id, rider.id)


@pytest.mark.asyncio
async def test_strict_mode_rejection_edge(paid_parcel, make_rider, strict_machine, refetch):
    parcel = await paid_parcel()
    rider = await make_rider()
    parcel_id, rider_id = parcel.id, rider.id
    await strict_machine.assign_rider(parcel_id, rider_id)

    with pytest.raises(ValidationError):
        await strict_machine.reject_assignment(parcel_id, ParcelStatus.UNPAID.value, rider_id)
    assert (await refetch(Rider, rider_id)).work_status == WorkStatus.IN_DELIVERY

    await strict_machine.reject_assignment(parcel_id, ParcelStatus.PENDING_PICKUP.value, rider_id)
    assert (await refetch(Rider, rider_id)).work_status == WorkStatus.AVAILABLE


def test_unknown_policy_names_are_refused():
    with pytest.raises(ValueError):
        TransitionPolicy(mode="lenient")
    with pytest.raises(ValueError):
        TransitionPolicy(release_policy="sometimes")


# Atomicity

@pytest.mark.asyncio
async def test_failed_event_append_rolls_back_assignment(paid_parcel, make_rider, state_machine, mocker, refetch):
    parcel = await paid_parcel()
    rider = await make_rider()
    parcel_id, rider_id = parcel.id, rider.id
    mocker.patch.object(state_machine.ledger, "append", side_effect=RuntimeError("ledger down"))

    with pytest.raises(RuntimeError):
        await state_machine.assign_rider(parcel_id, rider_id)

    stored_parcel = await refetch(Parcel, parcel_id)
    stored_rider = await refetch(Rider, rider_id)
    assert stored_parcel.delivery_status == ParcelStatus.PENDING_PICKUP.value
    assert stored_parcel.rider_id is None
    assert stored_rider.work_status == WorkStatus.AVAILABLE


@pytest.mark.asyncio
async def test_failed_release_rolls_back_status_update(paid_parcel, make_rider, state_machine, mocker, refetch):
    parcel = await paid_parcel()
    rider = await make_rider()
    parcel_id, rider_id = parcel.id, rider.id
    await state_machine.assign_rider(parcel_id, rider_id)
    mocker.patch.object(state_machine.riders, "release", side_effect=RuntimeError("rider store down"))

    with pytest.raises(RuntimeError):
        await state_machine.update_status(parcel_id, "delivered", rider_id)

    assert (await refetch(Parcel, parcel_id)).delivery_status == ParcelStatus.RIDER_ASSIGNED.value
    assert (await refetch(Rider, rider_id)).work_status == WorkStatus.IN_DELIVERY


@pytest.mark.asyncio
async def test_commit_failure_is_a_consistency_error(paid_parcel, make_rider, state_machine, db_session, mocker):
    parcel = await paid_parcel()
    rider = await make_rider()
    mocker.patch.object(
        db_session, "commit",
        side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error")),
    )

    with pytest.raises(ConsistencyError) as exc_info:
        await state_machine.assign_rider(parcel.id, rider.id)

    assert "assign_rider" in exc_info.value.internal_message
    assert exc_info.value.message == "An internal consistency error occurred"
