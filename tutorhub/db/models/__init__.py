from tutorhub.db.models.availability_slot import AvailabilitySlot
from tutorhub.db.models.booking import ALLOWED_TRANSITIONS, Booking, BookingStatus, RequesterRole
from tutorhub.db.models.feedback import Feedback
from tutorhub.db.models.message import Message
from tutorhub.db.models.tutor_profile import TutorProfile
from tutorhub.db.models.user import TutorStatus, User, UserRole

__all__ = [
    "User",
    "UserRole",
    "TutorStatus",
    "TutorProfile",
    "AvailabilitySlot",
    "Booking",
    "BookingStatus",
    "RequesterRole",
    "ALLOWED_TRANSITIONS",
    "Feedback",
    "Message",
]
