from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tutorhub.api.deps import get_current_user, get_payment_gateway, rate_limited
from tutorhub.db.models import User
from tutorhub.db.session import get_db
from tutorhub.schemas.booking import CheckoutRequest, CheckoutResponse
from tutorhub.services.booking_service import start_checkout
from tutorhub.services.payment_gateway import PaymentGateway

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post(
    "",
    response_model=CheckoutResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(rate_limited("checkout"))],
)
def create_checkout(
    payload: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> CheckoutResponse:
    checkout = start_checkout(
        db=db,
        student=current_user,
        tutor_id=payload.tutor_id,
        subject=payload.subject,
        session_date_time=payload.session_date_time,
        start_time=payload.start_time,
        gateway=gateway,
    )
    return CheckoutResponse(session_id=checkout.session_id, url=checkout.url)
