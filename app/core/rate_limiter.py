from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

# Keyed by client address; disabled through RATE_LIMIT_ENABLED (tests turn it off)
limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.RATE_LIMIT_ENABLED,
)
