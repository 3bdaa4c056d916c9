import itertools
import os
import sys
import threading
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_tutorhub")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_tutorhub")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).resolve().parents[1]))

from tutorhub.api.deps import get_mailer, get_meeting_provider, get_payment_gateway
from tutorhub.core.config import settings
from tutorhub.core.datetimes import midnight_utc
from tutorhub.core.exceptions import UpstreamError
from tutorhub.core.rate_limiter import rate_limiter
from tutorhub.core.security import create_access_token
from tutorhub.db.base import Base
from tutorhub.db.models import AvailabilitySlot, Booking, TutorProfile, TutorStatus, User, UserRole
from tutorhub.db.session import get_db
from tutorhub.main import app
from tutorhub.services.meeting_provider import MeetingDetails, MeetingProvider
from tutorhub.services.notification_service import Mailer
from tutorhub.services.payment_gateway import CheckoutSession, StripePaymentGateway

TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakePaymentGateway(StripePaymentGateway):
    """Real Stripe webhook verification, recorded checkout sessions."""

    def __init__(self) -> None:
        super().__init__(
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
        )
        self.sessions: list[dict] = []
        self.fail = False

    def create_checkout_session(self, booking, tutor, unit_amount, success_url, cancel_url, metadata, customer_email=None):
        if self.fail:
            raise UpstreamError("Failed to create payment session")
        session_id = f"cs_test_{booking.id}"
        self.sessions.append(
            {
                "session_id": session_id,
                "booking_id": booking.id,
                "unit_amount": unit_amount,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata,
                "customer_email": customer_email,
            }
        )
        return CheckoutSession(session_id=session_id, url=f"https://checkout.stripe.test/pay/{session_id}")


class FakeMeetingProvider(MeetingProvider):
    def __init__(self) -> None:
        self.created: list[int] = []
        self.fail = False
        self._lock = threading.Lock()

    def create_meeting(self, booking, host):
        if self.fail:
            raise UpstreamError("Zoom API error (503): Service Unavailable")
        with self._lock:
            self.created.append(booking.id)
            number = len(self.created)
        return MeetingDetails(
            join_url=f"https://zoom.test/j/{number}",
            start_url=f"https://zoom.test/s/{number}",
            meeting_id=str(9000 + number),
            password="secret",
        )


class RecordingMailer(Mailer):
    def __init__(self) -> None:
        self.outbox: list[dict] = []
        self.fail = False
        self.fail_for: set[str] = set()

    def send(self, to, subject, body):
        if self.fail or to in self.fail_for:
            raise UpstreamError(f"Failed to send email to {to}")
        self.outbox.append({"to": to, "subject": subject, "body": body})


@pytest.fixture(autouse=True)
def reset_database() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    rate_limiter.reset()


@pytest.fixture()
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture()
def meeting_provider() -> FakeMeetingProvider:
    return FakeMeetingProvider()


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture()
def client(payment_gateway, meeting_provider, mailer) -> TestClient:
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway
    app.dependency_overrides[get_meeting_provider] = lambda: meeting_provider
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def create_user(db_session):
    counter = itertools.count(1)

    def _create(
        role: str = UserRole.STUDENT.value,
        name: str | None = None,
        tutor_status: str = TutorStatus.UNVERIFIED.value,
    ) -> User:
        number = next(counter)
        user = User(
            email=f"{role}{number}@example.com",
            name=name or f"{role.title()} {number}",
            hashed_password="x",
            role=role,
            tutor_status=tutor_status,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create


@pytest.fixture()
def create_tutor(db_session, create_user):
    def _create(
        hourly_rate: Decimal = Decimal("40.00"),
        slots: tuple[tuple[date, str, str], ...] = (),
    ) -> User:
        tutor = create_user(role=UserRole.TUTOR.value, name="Ada Tutor", tutor_status=TutorStatus.APPROVED.value)
        profile = TutorProfile(
            user_id=tutor.id,
            bio="Experienced mathematics tutor.",
            hourly_rate=hourly_rate,
            subjects=["Math"],
            qualifications=["MSc Mathematics"],
            is_online=True,
        )
        db_session.add(profile)
        db_session.flush()
        for on, start_time, end_time in slots:
            db_session.add(
                AvailabilitySlot(
                    tutor_profile_id=profile.id,
                    date=midnight_utc(on),
                    start_time=start_time,
                    end_time=end_time,
                )
            )
        db_session.commit()
        db_session.refresh(tutor)
        return tutor

    return _create


@pytest.fixture()
def create_booking(db_session):
    def _create(student: User, tutor: User, session_date: datetime, status: str = "pending_payment") -> Booking:
        booking = Booking(
            student_id=student.id,
            tutor_id=tutor.id,
            subject="Math",
            session_date=session_date,
            status=status,
        )
        db_session.add(booking)
        db_session.commit()
        db_session.refresh(booking)
        return booking

    return _create


@pytest.fixture()
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(user_id=user.id, role=user.role, email=user.email)
        return {"Authorization": f"Bearer {token}"}

    return _headers
