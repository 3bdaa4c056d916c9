import logging
from dataclasses import dataclass

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from tutorhub.core.exceptions import NotFoundError, UpstreamError, ValidationError
from tutorhub.db.models import Message, User
from tutorhub.services.notification_service import Mailer, send_new_message_notification

logger = logging.getLogger(__name__)


@dataclass
class Conversation:
    other_user: User
    last_message: Message
    unread_count: int


def send_message(db: Session, sender: User, receiver_id: int, message_text: str, mailer: Mailer) -> Message:
    if receiver_id == sender.id:
        raise ValidationError("You cannot send a message to yourself")

    receiver = db.get(User, receiver_id)
    if not receiver or not receiver.is_active:
        raise NotFoundError("Receiver not found")

    message = Message(sender_id=sender.id, receiver_id=receiver.id, message_text=message_text.strip())
    db.add(message)
    db.commit()
    db.refresh(message)
    logger.info("message_sent message_id=%s sender_id=%s receiver_id=%s", message.id, sender.id, receiver.id)

    try:
        send_new_message_notification(mailer, sender, receiver, message.message_text)
    except UpstreamError as exc:
        logger.error("message_notification_failed message_id=%s error=%s", message.id, exc.message)
    return message


def list_conversations(db: Session, user_id: int) -> list[Conversation]:
    messages = db.scalars(
        select(Message)
        .where(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
        .order_by(Message.created_at.desc(), Message.id.desc())
    ).all()

    latest: dict[int, Message] = {}
    unread: dict[int, int] = {}
    for message in messages:
        other_id = message.receiver_id if message.sender_id == user_id else message.sender_id
        latest.setdefault(other_id, message)
        if message.receiver_id == user_id and not message.is_read:
            unread[other_id] = unread.get(other_id, 0) + 1

    if not latest:
        return []
    users = {user.id: user for user in db.scalars(select(User).where(User.id.in_(latest.keys())))}
    return [
        Conversation(other_user=users[other_id], last_message=message, unread_count=unread.get(other_id, 0))
        for other_id, message in latest.items()
        if other_id in users
    ]


def get_thread(db: Session, user_id: int, other_user_id: int, limit: int = 100, offset: int = 0) -> list[Message]:
    """Messages between two users, oldest first. Incoming ones are marked read."""
    if not db.get(User, other_user_id):
        raise NotFoundError("User not found")

    db.execute(
        update(Message)
        .where(
            Message.sender_id == other_user_id,
            Message.receiver_id == user_id,
            Message.is_read.is_(False),
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    return list(
        db.scalars(
            select(Message)
            .where(
                or_(
                    and_(Message.sender_id == user_id, Message.receiver_id == other_user_id),
                    and_(Message.sender_id == other_user_id, Message.receiver_id == user_id),
                )
            )
            .order_by(Message.created_at, Message.id)
            .limit(limit)
            .offset(offset)
        )
    )


def count_unread(db: Session, user_id: int) -> int:
    return db.scalar(
        select(func.count(Message.id)).where(Message.receiver_id == user_id, Message.is_read.is_(False))
    ) or 0
