import hmac
from typing import Optional

from fastapi import Header, status

from ..core.config import settings
from ..database import get_db  # noqa: F401  re-exported for dependency overrides
from ..utils.errors import error_response
from ..utils.redis_cache import MatchCache, StudentMetricsCache


def get_match_cache() -> MatchCache:
    return MatchCache()


def get_metrics_cache() -> StudentMetricsCache:
    return StudentMetricsCache()


def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """Gate admin routes on the shared ``ADMIN_API_TOKEN``."""
    expected = settings.ADMIN_API_TOKEN
    if not expected or not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode("utf-8"), expected.encode("utf-8")
    ):
        raise error_response(
            "Admin access required.",
            {"x_admin_token": "invalid"},
            status.HTTP_403_FORBIDDEN,
        )
