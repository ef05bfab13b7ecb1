"""Rate limiting middleware using SlowAPI."""
from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

PUSH_RATE_LIMIT = "600/minute"
DEVICE_RATE_LIMIT = "60/minute"
HEALTH_RATE_LIMIT = "200/minute"
