import pytest

from tutorhub.core.exceptions import InvalidStateError
from tutorhub.db.models import ALLOWED_TRANSITIONS, Booking, BookingStatus, RequesterRole


def _booking(status: BookingStatus) -> Booking:
    return Booking(student_id=1, tutor_id=2, subject="Math", status=status.value)


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (BookingStatus.PENDING_PAYMENT, BookingStatus.SCHEDULED, True),
        (BookingStatus.PENDING_PAYMENT, BookingStatus.CANCELLED, True),
        (BookingStatus.PENDING_PAYMENT, BookingStatus.RESCHEDULE_REQUESTED, False),
        (BookingStatus.SCHEDULED, BookingStatus.RESCHEDULE_REQUESTED, True),
        (BookingStatus.SCHEDULED, BookingStatus.COMPLETED, True),
        (BookingStatus.RESCHEDULE_REQUESTED, BookingStatus.RESCHEDULE_REQUESTED, False),
        (BookingStatus.COMPLETED, BookingStatus.CANCELLED, False),
        (BookingStatus.CANCELLED, BookingStatus.SCHEDULED, False),
    ],
)
def test_can_transition_to_follows_table(current, target, allowed):
    assert _booking(current).can_transition_to(target) is allowed


def test_terminal_states_have_no_exits():
    assert ALLOWED_TRANSITIONS[BookingStatus.COMPLETED] == frozenset()
    assert ALLOWED_TRANSITIONS[BookingStatus.CANCELLED] == frozenset()


def test_request_reschedule_records_role_only_from_scheduled():
    booking = _booking(BookingStatus.SCHEDULED)
    booking.request_reschedule(RequesterRole.TUTOR)

    assert booking.status == BookingStatus.RESCHEDULE_REQUESTED.value
    assert booking.reschedule_requester_role == "tutor"

    pending = _booking(BookingStatus.PENDING_PAYMENT)
    with pytest.raises(InvalidStateError):
        pending.request_reschedule(RequesterRole.STUDENT)
    assert pending.status == BookingStatus.PENDING_PAYMENT.value
    assert pending.reschedule_requester_role is None


def test_cancel_is_refused_for_terminal_bookings():
    pending = _booking(BookingStatus.PENDING_PAYMENT)
    pending.cancel()
    assert pending.status == BookingStatus.CANCELLED.value

    completed = _booking(BookingStatus.COMPLETED)
    with pytest.raises(InvalidStateError) as exc_info:
        completed.cancel()
    assert exc_info.value.detail == {"status": "completed", "target": "cancelled"}
    assert completed.status == BookingStatus.COMPLETED.value
