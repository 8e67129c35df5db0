import hmac
from fastapi import Header, HTTPException, Request, status
from examsim.core import cache
from examsim.core.config import settings

def exam_rate_limit(request: Request) -> None:
    if not settings.RATE_LIMIT_ENABLED:
        return
    client = request.client.host if request.client else "anonymous"
    allowed, _ = cache.check_rate_limit("exam", client, settings.EXAM_RATE_LIMIT_PER_MINUTE, 60)
    if not allowed:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                            detail="Too many exam requests, please slow down")

def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    expected = settings.ADMIN_TOKEN.get_secret_value() if settings.ADMIN_TOKEN else None
    if not expected or not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin token required")
