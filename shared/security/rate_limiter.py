from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from .jwt_handler import verify_access_token


def _token_subject(request: Request):
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    payload = verify_access_token(auth_header[len("Bearer "):], request.app.state.settings.jwt_secret_key)
    return payload.get("sub") if payload else None


def user_id_or_ip(request: Request) -> str:
    """
    Key function for SlowAPI.

    Authenticated callers are limited per user id, so one buyer cannot burn
    another buyer's budget from behind the same NAT. Everything else is keyed
    by client address.
    """
    # get_current_actor has usually run already and left the id here
    user_id = getattr(request.state, "user_id", None) or _token_subject(request)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=user_id_or_ip)
