import hmac
from typing import Optional

from fastapi import Header, Query

from .config import settings
from .errors import AuthError


def check_owner_secret(presented: Optional[str], expected: Optional[str]) -> None:
    if not expected:
        # Fail closed: no configured secret means no owner access at all.
        raise AuthError("owner access not configured")
    if presented is None or not hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
        raise AuthError("invalid owner password")


def require_owner(
    x_owner_password: Optional[str] = Header(None, alias="X-Owner-Password"),
    password: Optional[str] = Query(None),
) -> bool:
    presented = x_owner_password if x_owner_password is not None else password
    check_owner_secret(presented, settings.owner_password)
    return True
