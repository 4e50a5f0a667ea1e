"""Rate limiting for unauthenticated endpoints (login, signup, invitation checks)."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from minrisk.core.config import settings

LOGIN_LIMIT = "10/minute"
SIGNUP_LIMIT = "5/minute"
INVITE_VALIDATION_LIMIT = "20/minute"


def get_client_ip(request: Request) -> str:
    """Client address used as the limiter key.

    Forwarding headers are honoured only with ``BEHIND_PROXY`` so a direct
    client cannot pick its own bucket.
    """
    if settings.BEHIND_PROXY:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()
    return get_remote_address(request)


limiter = Limiter(key_func=get_client_ip, default_limits=["120/minute"])
