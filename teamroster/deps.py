from typing import Optional
from fastapi import Cookie, Header, HTTPException, status

from teamroster.core.auth import decode_session_token
from teamroster.core.config import settings
from teamroster.core.errors import (
    ConflictError, GuardViolation, NotFoundError, OpResult, RosterError, ValidationError,
)


def get_actor_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    session_token: Optional[str] = Cookie(default=None),
) -> int:
    """
    Who is acting, for audit attribution: X-User-Id header, then the session
    cookie, then the configured placeholder actor.
    """
    if x_user_id:
        uid = x_user_id.strip()
        if not uid.isdigit():
            raise HTTPException(status_code=400, detail="X-User-Id must be a numeric user id")
        return int(uid)
    if session_token:
        actor = decode_session_token(session_token)
        if actor is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired session")
        return actor
    return settings.DEFAULT_ACTOR_ID


_STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (GuardViolation, status.HTTP_409_CONFLICT),
)


def http_error(err: RosterError) -> HTTPException:
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(err, cls):
            return HTTPException(status_code=code, detail=err.to_dict())
    # transaction failures: generic message only, cause is in the server log
    return HTTPException(status_code=500, detail=err.to_dict())


def unwrap_or_raise(result: OpResult):
    if not result.ok:
        raise http_error(result.error)
    return result.value
