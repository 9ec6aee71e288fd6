"""
HMAC Authentication Middleware
==============================
Starlette middleware that rejects requests failing HMAC verification.

Usage:
    from hmac_guard import create_hmac_manager
    from hmac_guard.middleware import HmacAuthMiddleware, require_hmac_credential

    manager = create_hmac_manager()
    app.add_middleware(HmacAuthMiddleware, verifier=manager.verifier, config=manager.config)

    @app.get("/orders")
    async def orders(credential = Depends(require_hmac_credential)):
        ...
"""

from typing import Optional, Set

import structlog
from fastapi import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from .config import HmacConfig
from .models import Credential, RequestContext
from .verifier import HmacVerifier, VerificationFailureReason

logger = structlog.get_logger(__name__)


def get_client_ip(request: Request, trust_forwarded_for: bool = False) -> Optional[str]:
    """Client IP, optionally from the first X-Forwarded-For hop."""
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


async def build_request_context(request: Request, trust_forwarded_for: bool = False) -> RequestContext:
    body = await request.body()
    return RequestContext(
        method=request.method,
        path=request.url.path,
        body=body,
        headers=request.headers,
        ip_address=get_client_ip(request, trust_forwarded_for),
        user_agent=request.headers.get("user-agent"),
    )


class HmacAuthMiddleware(BaseHTTPMiddleware):
    """
    Verifies every request that is not on an excluded path.

    Rejections use the body {"success": false, "message", "code", "data": null}
    with the failure's HTTP status. On success the credential is stored on
    request.state.hmac_credential (and request.state.tenant_id when tenancy
    is enabled).
    """

    DEFAULT_EXCLUDED_PATHS: Set[str] = {"/health", "/ready", "/live"}

    def __init__(
        self,
        app,
        verifier: HmacVerifier,
        config: Optional[HmacConfig] = None,
        excluded_paths: Optional[Set[str]] = None,
        trust_forwarded_for: bool = False,
    ):
        super().__init__(app)
        self.verifier = verifier
        self.config = config or verifier.config
        self.excluded_paths = (
            self.DEFAULT_EXCLUDED_PATHS if excluded_paths is None else excluded_paths
        )
        self.trust_forwarded_for = trust_forwarded_for

    def _is_excluded(self, path: str) -> bool:
        return path.rstrip("/") in {p.rstrip("/") for p in self.excluded_paths}

    async def dispatch(self, request: Request, call_next):
        if not self.config.enabled or self._is_excluded(request.url.path):
            return await call_next(request)

        context = await build_request_context(request, self.trust_forwarded_for)
        result = await self.verifier.verify(context)

        if not result.is_valid:
            return JSONResponse(
                status_code=result.http_status,
                content=result.to_response_body(),
            )

        request.state.hmac_credential = result.credential
        if self.config.tenancy.enabled:
            request.state.tenant_id = result.credential.tenant_id
        return await call_next(request)


# =============================================================================
# FastAPI Dependencies
# =============================================================================

def get_hmac_credential(request: Request) -> Optional[Credential]:
    """The credential that authenticated this request, if any."""
    return getattr(request.state, "hmac_credential", None)


def require_hmac_credential(request: Request) -> Credential:
    """
    Dependency for routes that must run behind HmacAuthMiddleware.

    Raises:
        HTTPException: 401 when the request was not authenticated
    """
    credential = get_hmac_credential(request)
    if credential is None:
        logger.warning("hmac_credential_missing", path=request.url.path)
        reason = VerificationFailureReason.MISSING_HEADERS
        raise HTTPException(
            status_code=reason.http_status,
            detail={"success": False, "message": reason.message, "code": reason.code, "data": None},
        )
    return credential
