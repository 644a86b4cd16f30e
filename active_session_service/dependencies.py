from fastapi import Depends, HTTPException, Request
from sentry_sdk import set_tag, set_user

from .logging_config import bind_session
from .services.session_synchronizer import SessionSynchronizer


async def get_current_user_id(request: Request) -> str:
    """Extract user_id from X-User-Id header."""
    user_id = request.headers.get("X-User-Id")
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    set_user({"id": str(user_id)})
    set_tag("service", "active-session-service")
    return user_id


async def get_synchronizer(
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> SessionSynchronizer:
    synchronizer: SessionSynchronizer = request.app.state.synchronizer
    synchronizer.gateway.bind_owner(user_id)
    # Contextvars do not outlive a request.
    bind_session(synchronizer.session_id)
    return synchronizer
