from functools import lru_cache
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from tutorhub.core.config import settings
from tutorhub.core.exceptions import AuthenticationError, AuthorizationError
from tutorhub.core.rate_limiter import rate_limiter
from tutorhub.core.security import decode_access_token
from tutorhub.db.models.user import User, UserRole
from tutorhub.db.session import get_db
from tutorhub.services.meeting_provider import MeetingProvider, TokenCache, ZoomMeetingProvider
from tutorhub.services.notification_service import Mailer, build_mailer
from tutorhub.services.payment_gateway import PaymentGateway, StripePaymentGateway

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

RATE_LIMITS: dict[str, Callable[[], int]] = {
    "register": lambda: settings.auth_register_max_attempts,
    "login": lambda: settings.auth_login_max_attempts,
    "checkout": lambda: settings.checkout_max_attempts,
    "message": lambda: settings.message_max_attempts,
}


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    try:
        user_id = decode_access_token(token)
    except ValueError:
        raise AuthenticationError("Could not validate credentials") from None

    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise AuthenticationError("Could not validate credentials")
    return user


def require_roles(*roles: UserRole | str) -> Callable[[User], User]:
    allowed_roles = {role.value if isinstance(role, UserRole) else role for role in roles}

    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise AuthorizationError("Not enough permissions")
        return current_user

    return checker


def require_approved_tutor(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_approved_tutor:
        raise AuthorizationError("Only approved tutors can manage availability")
    return current_user


def rate_limited(scope: str) -> Callable[[Request], None]:
    limit_for = RATE_LIMITS[scope]

    def checker(request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        decision = rate_limiter.hit(
            key=f"{scope}:{client_ip}",
            limit=limit_for(),
            window_seconds=settings.auth_rate_limit_window_seconds,
        )
        if not decision.allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later.",
                headers={"Retry-After": str(decision.retry_after)},
            )

    return checker


def get_payment_gateway() -> PaymentGateway:
    return StripePaymentGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        currency=settings.payment_currency,
        tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
    )


@lru_cache
def get_meeting_provider() -> MeetingProvider:
    # one instance per process so the access token cache is shared
    return ZoomMeetingProvider(
        account_id=settings.zoom_account_id,
        client_id=settings.zoom_client_id,
        client_secret=settings.zoom_client_secret,
        token_cache=TokenCache(),
        oauth_url=settings.zoom_oauth_url,
        api_base_url=settings.zoom_api_base_url,
        timeout_seconds=settings.zoom_timeout_seconds,
        refresh_margin_seconds=settings.zoom_token_refresh_margin_seconds,
        duration_minutes=settings.session_duration_minutes,
    )


def get_mailer() -> Mailer:
    return build_mailer()
