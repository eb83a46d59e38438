# api/rate_limit.py
from fastapi import FastAPI
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

SEARCH_LIMIT = "30/minute"
DEFAULT_LIMIT = "100/hour"


def register_rate_limit(app: FastAPI):
    """Attach the per-client limiter and its 429 handler to the app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
