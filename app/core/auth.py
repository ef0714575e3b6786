"""
Authentication dependencies for the sync trigger endpoints.

Two schemes are in play:

- Scheduled trigger: ``Authorization: Bearer {CRON_SECRET}`` shared with the
  periodic invoker.
- Manual trigger: an operator credential supplied either as ``X-API-Key`` or
  as a bearer token. ``ADMIN_TOKEN`` identifies an admin operator;
  ``API_KEY`` identifies an authenticated operator without the admin role.
"""
import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

API_KEY_NAME = "X-API-Key"

api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Operator:
    """An authenticated caller of the manual trigger."""
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _matches(candidate: Optional[str], secret: str) -> bool:
    if not candidate or not secret:
        return False
    return hmac.compare_digest(candidate.encode(), secret.encode())


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def verify_cron_secret(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> None:
    """
    Guard for the scheduled sync trigger.

    Raises:
        HTTPException: 401 when the bearer token does not equal CRON_SECRET
    """
    if not settings.CRON_SECRET and not settings.is_production():
        logger.debug("CRON_SECRET not configured - allowing scheduled trigger in development mode")
        return

    token = credentials.credentials if credentials else None
    if not _matches(token, settings.CRON_SECRET):
        logger.warning(f"Rejected scheduled sync trigger from {_client_host(request)}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_operator(
    request: Request,
    api_key: Optional[str] = Security(api_key_header),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Operator:
    """
    Resolve the calling operator.

    Raises:
        HTTPException: 401 when no recognised credential is supplied
    """
    token = api_key or (credentials.credentials if credentials else None)

    if _matches(token, settings.ADMIN_TOKEN):
        return Operator(role="admin")
    if _matches(token, settings.API_KEY):
        return Operator(role="operator")

    if token:
        logger.warning(f"Invalid operator credential from {_client_host(request)}")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def require_admin(operator: Operator = Security(get_operator)) -> Operator:
    """
    Guard for admin-only operations.

    Raises:
        HTTPException: 403 when the operator is authenticated but not an admin
    """
    if not operator.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden - Admin access required",
        )
    return operator
