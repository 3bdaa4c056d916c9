import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from tutorhub.core.datetimes import format_utc_z
from tutorhub.core.exceptions import UpstreamError
from tutorhub.db.models import Booking, User

logger = logging.getLogger(__name__)


class TokenCache:
    """Expiring key/value store for provider credentials.

    Owned by one adapter instance. Nothing is persisted, so a restart simply
    means one extra credential exchange.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, expires_at: float) -> None:
        with self._lock:
            self._entries[key] = (value, expires_at)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


@dataclass(frozen=True)
class MeetingDetails:
    join_url: str
    start_url: str
    meeting_id: str
    password: str | None


class MeetingProvider(ABC):
    @abstractmethod
    def create_meeting(self, booking: Booking, host: User) -> MeetingDetails:
        raise NotImplementedError


class ZoomMeetingProvider(MeetingProvider):
    TOKEN_CACHE_KEY = "zoom:access_token"

    def __init__(
        self,
        account_id: str,
        client_id: str,
        client_secret: str,
        token_cache: TokenCache | None = None,
        oauth_url: str = "https://zoom.us/oauth/token",
        api_base_url: str = "https://api.zoom.us/v2",
        timeout_seconds: float = 10.0,
        refresh_margin_seconds: int = 300,
        duration_minutes: int = 60,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._account_id = account_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_cache = token_cache or TokenCache()
        self._oauth_url = oauth_url
        self._api_base_url = api_base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._refresh_margin_seconds = refresh_margin_seconds
        self._duration_minutes = duration_minutes
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._account_id and self._client_id and self._client_secret)

    def _http_client(self) -> httpx.Client:
        return httpx.Client(timeout=self._timeout, transport=self._transport)

    def _get_access_token(self, client: httpx.Client) -> str:
        cached = self._token_cache.get(self.TOKEN_CACHE_KEY)
        if cached:
            return cached

        if not self.is_configured:
            raise UpstreamError("Zoom credentials are not configured")

        response = client.post(
            self._oauth_url,
            params={"grant_type": "account_credentials", "account_id": self._account_id},
            auth=(self._client_id, self._client_secret),
        )
        if not response.is_success:
            raise UpstreamError(
                f"Zoom token exchange failed ({response.status_code}): {_error_reason(response)}"
            )

        payload = response.json()
        token = payload["access_token"]
        expires_in = int(payload.get("expires_in", 3600))
        self._token_cache.set(
            self.TOKEN_CACHE_KEY,
            token,
            self._token_cache.now() + max(expires_in - self._refresh_margin_seconds, 0),
        )
        return token

    def _meeting_body(self, booking: Booking, host: User) -> dict[str, Any]:
        return {
            "topic": f"Tutoring Session: {booking.subject}",
            "agenda": f"Session with {host.name}",
            "type": 2,
            # always the stored UTC instant, never a client-local rendering
            "start_time": format_utc_z(booking.session_date),
            "timezone": "UTC",
            "duration": self._duration_minutes,
            "settings": {
                "host_video": True,
                "participant_video": True,
                "join_before_host": False,
                "mute_upon_entry": False,
                "watermark": False,
                "use_pmi": False,
                "approval_type": 0,
                "audio": "both",
                "auto_recording": "none",
                "waiting_room": True,
            },
        }

    def create_meeting(self, booking: Booking, host: User) -> MeetingDetails:
        try:
            with self._http_client() as client:
                token = self._get_access_token(client)
                response = client.post(
                    f"{self._api_base_url}/users/me/meetings",
                    json=self._meeting_body(booking, host),
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Zoom request failed: {exc.__class__.__name__}") from exc
        except (KeyError, ValueError) as exc:
            raise UpstreamError("Zoom token response was malformed") from exc

        if response.status_code == 401:
            self._token_cache.invalidate(self.TOKEN_CACHE_KEY)
        if not response.is_success:
            raise UpstreamError(f"Zoom API error ({response.status_code}): {_error_reason(response)}")

        try:
            data = response.json()
            details = MeetingDetails(
                join_url=data["join_url"],
                start_url=data["start_url"],
                meeting_id=str(data["id"]),
                password=data.get("password"),
            )
        except (KeyError, ValueError) as exc:
            raise UpstreamError("Zoom meeting response was malformed") from exc

        logger.info("zoom_meeting_created booking_id=%s meeting_id=%s", booking.id, details.meeting_id)
        return details


def _error_reason(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.reason_phrase
    return payload.get("reason") or payload.get("message") or response.reason_phrase
