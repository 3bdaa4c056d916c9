import logging
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import update

from tutorhub.db.models import AvailabilitySlot, Booking, BookingStatus
from tutorhub.services.fulfillment_service import FulfillmentOutcome, fulfill_booking, process_payment_event
from tutorhub.services.meeting_provider import MeetingDetails, MeetingProvider

SESSION_START = datetime(2025, 3, 10, 14, 0, tzinfo=UTC)


def _seed(create_user, create_tutor, create_booking, slots=((date(2025, 3, 10), "14:00", "15:00"),)):
    student = create_user(name="Sam Student")
    tutor = create_tutor(slots=slots)
    booking = create_booking(student, tutor, SESSION_START)
    return booking, student, tutor


def _slot_times(db_session) -> list[tuple[int, str]]:
    return [(slot.date.day, slot.start_time) for slot in db_session.query(AvailabilitySlot).order_by(AvailabilitySlot.id)]


def test_paid_booking_is_scheduled_with_meeting_and_slot_removed(
    db_session, create_user, create_tutor, create_booking, meeting_provider, mailer
):
    booking, student, tutor = _seed(
        create_user,
        create_tutor,
        create_booking,
        slots=((date(2025, 3, 10), "14:00", "15:00"), (date(2025, 3, 10), "16:00", "17:00")),
    )

    outcome = fulfill_booking(db_session, booking.id, "14:00", meeting_provider, mailer)

    assert outcome == FulfillmentOutcome.FULFILLED
    db_session.expire_all()
    stored = db_session.get(Booking, booking.id)
    assert stored.status == BookingStatus.SCHEDULED.value
    assert stored.meeting_url == "https://zoom.test/j/1"
    assert stored.meeting_start_url == "https://zoom.test/s/1"
    assert stored.meeting_id == "9001"
    assert _slot_times(db_session) == [(10, "16:00")]
    assert sorted(mail["to"] for mail in mailer.outbox) == sorted([student.email, tutor.email])


def test_repeated_delivery_has_no_further_effects(
    db_session, create_user, create_tutor, create_booking, meeting_provider, mailer
):
    booking, _, _ = _seed(create_user, create_tutor, create_booking)
    fulfill_booking(db_session, booking.id, "14:00", meeting_provider, mailer)

    outcome = fulfill_booking(db_session, booking.id, "14:00", meeting_provider, mailer)

    assert outcome == FulfillmentOutcome.ALREADY_SCHEDULED
    assert meeting_provider.created == [booking.id]
    assert len(mailer.outbox) == 2


def test_slot_already_removed_still_schedules(
    db_session, create_user, create_tutor, create_booking, meeting_provider, mailer, caplog
):
    booking, _, _ = _seed(create_user, create_tutor, create_booking, slots=())

    with caplog.at_level(logging.WARNING):
        outcome = fulfill_booking(db_session, booking.id, "14:00", meeting_provider, mailer)

    assert outcome == FulfillmentOutcome.FULFILLED
    assert "fulfillment_slot_not_found" in caplog.text
    db_session.expire_all()
    assert db_session.get(Booking, booking.id).status == BookingStatus.SCHEDULED.value


def test_meeting_failure_is_not_fatal(db_session, create_user, create_tutor, create_booking, meeting_provider, mailer):
    booking, _, _ = _seed(create_user, create_tutor, create_booking)
    meeting_provider.fail = True

    outcome = fulfill_booking(db_session, booking.id, "14:00", meeting_provider, mailer)

    assert outcome == FulfillmentOutcome.FULFILLED
    db_session.expire_all()
    stored = db_session.get(Booking, booking.id)
    assert stored.status == BookingStatus.SCHEDULED.value
    assert stored.meeting_url is None
    assert stored.meeting_id is None
    assert _slot_times(db_session) == []
    assert len(mailer.outbox) == 2


def test_missing_start_time_skips_slot_removal(
    db_session, create_user, create_tutor, create_booking, meeting_provider, mailer
):
    booking, _, _ = _seed(create_user, create_tutor, create_booking)

    outcome = fulfill_booking(db_session, booking.id, None, meeting_provider, mailer)

    assert outcome == FulfillmentOutcome.FULFILLED
    assert _slot_times(db_session) == [(10, "14:00")]


def test_notification_failure_keeps_booking_scheduled(
    db_session, create_user, create_tutor, create_booking, meeting_provider, mailer
):
    booking, _, _ = _seed(create_user, create_tutor, create_booking)
    mailer.fail = True

    outcome = fulfill_booking(db_session, booking.id, "14:00", meeting_provider, mailer)

    assert outcome == FulfillmentOutcome.FULFILLED
    db_session.expire_all()
    assert db_session.get(Booking, booking.id).status == BookingStatus.SCHEDULED.value


def test_unknown_booking_is_reported(db_session, meeting_provider, mailer):
    outcome = fulfill_booking(db_session, 4242, "14:00", meeting_provider, mailer)

    assert outcome == FulfillmentOutcome.BOOKING_NOT_FOUND
    assert meeting_provider.created == []


def test_missing_participant_aborts_before_any_mutation(
    db_session, create_tutor, meeting_provider, mailer, caplog
):
    tutor = create_tutor(slots=((date(2025, 3, 10), "14:00", "15:00"),))
    booking = Booking(student_id=777, tutor_id=tutor.id, subject="Math", session_date=SESSION_START)
    db_session.add(booking)
    db_session.commit()

    with caplog.at_level(logging.CRITICAL):
        outcome = fulfill_booking(db_session, booking.id, "14:00", meeting_provider, mailer)

    assert outcome == FulfillmentOutcome.MISSING_PARTICIPANTS
    assert "fulfillment_missing_participants" in caplog.text
    db_session.expire_all()
    assert db_session.get(Booking, booking.id).status == BookingStatus.PENDING_PAYMENT.value
    assert _slot_times(db_session) == [(10, "14:00")]
    assert meeting_provider.created == []
    assert mailer.outbox == []


def test_losing_the_status_race_reports_already_scheduled(
    db_session, create_user, create_tutor, create_booking, mailer, caplog
):
    booking, _, _ = _seed(create_user, create_tutor, create_booking)

    class RacingMeetingProvider(MeetingProvider):
        def create_meeting(self, booking, host):
            # another delivery commits the status while this one talks to the provider
            db_session.execute(
                update(Booking).where(Booking.id == booking.id).values(status=BookingStatus.SCHEDULED.value)
            )
            db_session.commit()
            return MeetingDetails("https://zoom.test/j/x", "https://zoom.test/s/x", "555", None)

    with caplog.at_level(logging.WARNING):
        outcome = fulfill_booking(db_session, booking.id, "14:00", RacingMeetingProvider(), mailer)

    assert outcome == FulfillmentOutcome.ALREADY_SCHEDULED
    assert "fulfillment_orphan_meeting" in caplog.text
    db_session.expire_all()
    assert db_session.get(Booking, booking.id).meeting_id is None
    assert mailer.outbox == []


def test_process_payment_event_dispatches_on_type(
    db_session, create_user, create_tutor, create_booking, meeting_provider, mailer
):
    booking, _, _ = _seed(create_user, create_tutor, create_booking)
    ignored = process_payment_event(
        db_session,
        {"id": "evt_0", "type": "payment_intent.created", "data": {"object": {}}},
        meeting_provider,
        mailer,
    )
    malformed = process_payment_event(
        db_session,
        {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {"metadata": {}}}},
        meeting_provider,
        mailer,
    )
    fulfilled = process_payment_event(
        db_session,
        {
            "id": "evt_2",
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_1", "metadata": {"booking_id": str(booking.id), "start_time": "14:00"}}},
        },
        meeting_provider,
        mailer,
    )

    assert ignored is None
    assert malformed is None
    assert fulfilled == FulfillmentOutcome.FULFILLED


def _claimed_by_other_delivery(db_session, booking: Booking, claimed_at: datetime) -> None:
    booking.fulfillment_claim_token = "other-delivery"
    booking.fulfillment_claimed_at = claimed_at
    db_session.commit()


def test_live_claim_held_elsewhere_reports_in_progress(
    db_session, create_user, create_tutor, create_booking, meeting_provider, mailer
):
    booking, _, _ = _seed(create_user, create_tutor, create_booking)
    _claimed_by_other_delivery(db_session, booking, datetime.now(UTC))

    outcome = fulfill_booking(db_session, booking.id, "14:00", meeting_provider, mailer)

    assert outcome == FulfillmentOutcome.IN_PROGRESS
    assert meeting_provider.created == []
    assert mailer.outbox == []
    assert _slot_times(db_session) == [(10, "14:00")]
    db_session.expire_all()
    stored = db_session.get(Booking, booking.id)
    assert stored.status == BookingStatus.PENDING_PAYMENT.value
    assert stored.fulfillment_claim_token == "other-delivery"


def test_expired_claim_is_taken_over(db_session, create_user, create_tutor, create_booking, meeting_provider, mailer):
    booking, _, _ = _seed(create_user, create_tutor, create_booking)
    _claimed_by_other_delivery(db_session, booking, datetime.now(UTC) - timedelta(hours=1))

    outcome = fulfill_booking(db_session, booking.id, "14:00", meeting_provider, mailer)

    assert outcome == FulfillmentOutcome.FULFILLED
    assert meeting_provider.created == [booking.id]
    db_session.expire_all()
    stored = db_session.get(Booking, booking.id)
    assert stored.status == BookingStatus.SCHEDULED.value
    assert stored.fulfillment_claim_token != "other-delivery"


def test_tutor_is_notified_when_student_email_fails(
    db_session, create_user, create_tutor, create_booking, meeting_provider, mailer
):
    booking, student, tutor = _seed(create_user, create_tutor, create_booking)
    mailer.fail_for = {student.email}

    outcome = fulfill_booking(db_session, booking.id, "14:00", meeting_provider, mailer)

    assert outcome == FulfillmentOutcome.FULFILLED
    assert [mail["to"] for mail in mailer.outbox] == [tutor.email]
