"""
Rate Limiting

slowapi limits keyed by the authenticated user, falling back to the client IP.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

# Per-route limits, used as @limiter.limit(LIMIT_AI)
LIMIT_STANDARD = "100/minute"
LIMIT_AI = "10/minute"
LIMIT_AUTH = "20/minute"
LIMIT_PUBLIC = "5/minute"


def get_identifier(request: Request) -> str:
    """user:<id> once authentication has run, otherwise the remote address."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=get_identifier, default_limits=[LIMIT_STANDARD])


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded: {exc.detail}"
            }
        }
    )


def setup_rate_limiting(app: FastAPI):
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
