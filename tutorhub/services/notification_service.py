import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage

from tutorhub.core.config import settings
from tutorhub.core.datetimes import ensure_utc
from tutorhub.core.exceptions import UpstreamError
from tutorhub.db.models import Booking, User

logger = logging.getLogger(__name__)


class Mailer(ABC):
    @abstractmethod
    def send(self, to: str, subject: str, body: str) -> None:
        raise NotImplementedError


class SmtpMailer(Mailer):
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        use_tls: bool = True,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._sender = sender
        self._use_tls = use_tls
        self._timeout = timeout_seconds

    def send(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                if self._use_tls:
                    server.starttls()
                if self._username:
                    server.login(self._username, self._password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise UpstreamError(f"Failed to send email to {to}") from exc
        logger.info("email_sent to=%s subject=%r", to, subject)


class LoggingMailer(Mailer):
    """Used when SMTP is not configured: the email is only logged."""

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("email_logged to=%s subject=%r body=%r", to, subject, body)


def build_mailer() -> Mailer:
    if not settings.smtp_host:
        return LoggingMailer()
    return SmtpMailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        sender=settings.mail_from,
        use_tls=settings.smtp_use_tls,
        timeout_seconds=settings.smtp_timeout_seconds,
    )


def _session_label(booking: Booking) -> str:
    return f"{ensure_utc(booking.session_date):%A, %B %d, %Y at %H:%M} UTC"


def send_booking_confirmation(mailer: Mailer, booking: Booking, student: User, tutor: User) -> None:
    """Email both participants. Each email is attempted; failures are raised together at the end."""
    when = _session_label(booking)
    meeting_line = (
        f"Join link: {booking.meeting_url}"
        if booking.meeting_url
        else "The meeting link will be shared with you separately."
    )
    host_line = (
        f"Start link: {booking.meeting_start_url}"
        if booking.meeting_start_url
        else "The meeting link will be shared with you separately."
    )
    emails = [
        (
            student.email,
            f"Booking confirmed: {booking.subject} with {tutor.name}",
            f"Hi {student.name},\n\n"
            f"Your {booking.subject} session with {tutor.name} is confirmed for {when}.\n"
            f"{meeting_line}\n",
        ),
        (
            tutor.email,
            f"New booking: {booking.subject} with {student.name}",
            f"Hi {tutor.name},\n\n"
            f"{student.name} booked a {booking.subject} session with you for {when}.\n"
            f"{host_line}\n",
        ),
    ]

    failed: list[str] = []
    for to, subject, body in emails:
        try:
            mailer.send(to=to, subject=subject, body=body)
        except UpstreamError as exc:
            logger.error("booking_confirmation_failed booking_id=%s to=%s error=%s", booking.id, to, exc.message)
            failed.append(to)
    if failed:
        raise UpstreamError(f"Failed to send booking confirmation to {', '.join(failed)}")


def send_reschedule_request(
    mailer: Mailer,
    booking: Booking,
    requester: User,
    recipient: User,
    reason: str,
) -> None:
    mailer.send(
        to=recipient.email,
        subject=f"Reschedule requested: {booking.subject}",
        body=(
            f"Hi {recipient.name},\n\n"
            f"{requester.name} asked to reschedule the {booking.subject} session "
            f"planned for {_session_label(booking)}.\n\n"
            f"Reason: {reason}\n"
        ),
    )


def send_new_message_notification(mailer: Mailer, sender: User, receiver: User, message_text: str) -> None:
    preview = message_text if len(message_text) <= 200 else f"{message_text[:200]}..."
    mailer.send(
        to=receiver.email,
        subject=f"New message from {sender.name}",
        body=f"Hi {receiver.name},\n\n{sender.name} wrote:\n\n{preview}\n",
    )


def send_tutor_application_received(mailer: Mailer, applicant: User) -> None:
    mailer.send(
        to=applicant.email,
        subject="Your tutor application is under review",
        body=(
            f"Hi {applicant.name},\n\n"
            "Thanks for submitting your tutor profile. We will let you know once it has been reviewed.\n"
        ),
    )
    mailer.send(
        to=settings.admin_email,
        subject=f"New tutor application: {applicant.name}",
        body=f"{applicant.name} <{applicant.email}> submitted a tutor profile (user id {applicant.id}).\n",
    )


def send_tutor_status_update(mailer: Mailer, applicant: User) -> None:
    if applicant.rejection_reason:
        body = (
            f"Hi {applicant.name},\n\n"
            "Your tutor application was not approved.\n\n"
            f"Reason: {applicant.rejection_reason}\n"
        )
    else:
        body = f"Hi {applicant.name},\n\nYour tutor application was approved. You can now publish availability.\n"
    mailer.send(
        to=applicant.email,
        subject=f"Tutor application {applicant.tutor_status}",
        body=body,
    )
