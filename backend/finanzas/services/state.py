from finanzas.core.config import settings
from finanzas.core.rate_limit import RateLimiter

rate_limiter = RateLimiter(redis_url=settings.redis_url, key_prefix=settings.redis_prefix)
