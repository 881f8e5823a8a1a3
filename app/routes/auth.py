"""Route-level auth helpers.

Users are identified by bearer token; a token equal to a user id is accepted
as that user. Checks only run when AUTH_REQUIRED is set.
"""

from fastapi import HTTPException, Request

from app.config import settings


def get_current_user_id(request: Request) -> str | None:
    """The user id carried by the bearer token, if any."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_user_owner(request: Request, user_id: str) -> None:
    """Raise 401/403 unless the caller is ``user_id``."""
    if not settings.auth_required:
        return
    current = get_current_user_id(request)
    if current is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if current != user_id:
        raise HTTPException(status_code=403, detail="Not authorized for this user")
