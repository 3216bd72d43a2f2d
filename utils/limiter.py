import logging

from fastapi import Request
from slowapi import Limiter

from utils.settings import get_settings

logger = logging.getLogger("backend.limiter")


def forwarded_for_ip(request: Request) -> str:
    """Resolve client IP using X-Forwarded-For first, then fallback to socket IP."""
    xff = request.headers.get("x-forwarded-for") or request.headers.get("X-Forwarded-For")
    if xff:
        ip = xff.split(',')[0].strip()
        if ip:
            return ip
    return request.client.host if request.client else ""


def _create_limiter() -> Limiter:
    """Create limiter with Redis storage if configured, otherwise use in-memory."""
    settings = get_settings()
    if settings.redis_url:
        logger.info("Using Redis for rate limiting")
        return Limiter(key_func=forwarded_for_ip, storage_uri=settings.redis_url)
    logger.info("Using in-memory rate limiting (Redis not configured)")
    return Limiter(key_func=forwarded_for_ip)


# Global limiter instance to be shared across the app and routers
limiter = _create_limiter()


def evaluate_rate_limit() -> str:
    """Limit string for public evaluation endpoints, read at request time"""
    return get_settings().evaluate_rate_limit
