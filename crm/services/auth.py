from __future__ import annotations

from fastapi import Request

from crm.core.config import settings
from crm.core.exceptions import AuthenticationError


def get_current_user_id(request: Request) -> str:
    """
    Identify the caller from the trusted user header.

    Session handling lives in the fronting auth proxy; this service only
    trusts the user id it forwards.
    """
    user_id = (request.headers.get(settings.user_id_header) or "").strip()
    if not user_id:
        raise AuthenticationError(
            message="Unauthorized",
            code="unauthorized",
            details={"header": settings.user_id_header},
        )
    return user_id
