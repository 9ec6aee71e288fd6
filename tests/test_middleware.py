"""
Tests for the Starlette middleware and FastAPI dependencies.
"""

import asyncio

from fastapi import Depends, FastAPI
from starlette.requests import Request
from starlette.testclient import TestClient

from hmac_guard.config import HmacConfig, RateLimitSettings, TenancySettings
from hmac_guard.middleware import HmacAuthMiddleware, get_client_ip, require_hmac_credential
from hmac_guard.models import Credential

BODY = b'{"amount": 100}'


def build_app(manager, **kwargs) -> FastAPI:
    app = FastAPI()

    @app.post("/api/orders")
    async def create_order(request: Request, credential: Credential = Depends(require_hmac_credential)):
        body = await request.body()
        return {
            "client_id": credential.client_id,
            "body_size": len(body),
            "tenant_id": getattr(request.state, "tenant_id", None),
        }

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.add_middleware(HmacAuthMiddleware, verifier=manager.verifier, **kwargs)
    return app


def issue(manager, **kwargs):
    generated = asyncio.run(manager.generate_credentials(**kwargs))
    return generated.client_id, generated.plain_secret


def test_valid_request_reaches_route(manager, log_repository):
    """A signed request should pass and the route should still read the body."""
    client_id, secret = issue(manager)
    client = TestClient(build_app(manager))

    headers = manager.create_signed_headers(client_id, secret, "POST", "/api/orders", BODY)
    response = client.post("/api/orders", content=BODY, headers=headers)

    assert response.status_code == 200
    assert response.json()["client_id"] == client_id
    assert response.json()["body_size"] == len(BODY)
    assert log_repository.entries[-1].ip_address == "testclient"
    assert log_repository.entries[-1].user_agent == "testclient"


def test_rejection_body(manager):
    """Rejections should use the JSON error envelope."""
    client = TestClient(build_app(manager))

    response = client.post("/api/orders", content=BODY)

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "message": "Missing required headers",
        "code": "MISSING_HEADERS",
        "data": None,
    }


def test_bad_signature_is_rejected(manager):
    """A signature over a different body should be rejected."""
    client_id, secret = issue(manager)
    client = TestClient(build_app(manager))

    headers = manager.create_signed_headers(client_id, secret, "POST", "/api/orders", BODY)
    response = client.post("/api/orders", content=b'{"amount": 999}', headers=headers)

    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_SIGNATURE"


def test_rate_limited_status(make_manager):
    """Rate-limited clients should get 429."""
    manager = make_manager(HmacConfig(rate_limit=RateLimitSettings(max_attempts=1)))
    client_id, secret = issue(manager)
    client = TestClient(build_app(manager))

    bad = manager.create_signed_headers(client_id, "wrong", "POST", "/api/orders", BODY)
    client.post("/api/orders", content=BODY, headers=bad)
    good = manager.create_signed_headers(client_id, secret, "POST", "/api/orders", BODY)
    response = client.post("/api/orders", content=BODY, headers=good)

    assert response.status_code == 429
    assert response.json()["code"] == "RATE_LIMITED"


def test_excluded_paths_skip_verification(manager):
    """Health checks should not need a signature."""
    client = TestClient(build_app(manager))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_custom_excluded_paths(manager):
    """Passing excluded_paths replaces the defaults."""
    client = TestClient(build_app(manager, excluded_paths={"/public"}))

    response = client.get("/health")

    assert response.status_code == 401


def test_disabled_config_passes_through(make_manager):
    """With enabled=False nothing is verified."""
    manager = make_manager(HmacConfig(enabled=False))
    client = TestClient(build_app(manager))

    response = client.post("/api/orders", content=BODY)

    # The dependency still guards the route
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "MISSING_HEADERS"


def test_tenant_id_on_request_state(make_manager):
    """With tenancy on the credential's tenant is exposed on request.state."""
    manager = make_manager(HmacConfig(tenancy=TenancySettings(enabled=True)))
    client_id, secret = issue(manager, tenant_id="tenant-7")
    client = TestClient(build_app(manager))

    headers = manager.create_signed_headers(client_id, secret, "POST", "/api/orders", BODY)
    response = client.post("/api/orders", content=BODY, headers=headers)

    assert response.json()["tenant_id"] == "tenant-7"


def test_require_credential_without_middleware():
    """The dependency should reject requests the middleware never saw."""
    app = FastAPI()

    @app.get("/me")
    async def me(credential: Credential = Depends(require_hmac_credential)):
        return {"client_id": credential.client_id}

    response = TestClient(app).get("/me")

    assert response.status_code == 401
    assert response.json()["detail"]["success"] is False


class TestGetClientIp:
    """Tests for client IP resolution."""

    @staticmethod
    def _request(forwarded: str = None) -> Request:
        headers = [(b"x-forwarded-for", forwarded.encode())] if forwarded else []
        return Request({"type": "http", "headers": headers, "client": ("10.0.0.1", 1234)})

    def test_ignores_forwarded_for_by_default(self):
        """X-Forwarded-For is spoofable and ignored unless trusted."""
        assert get_client_ip(self._request("198.51.100.1")) == "10.0.0.1"

    def test_trusted_forwarded_for(self):
        """The first hop should be used when trusted."""
        request = self._request("198.51.100.1, 10.0.0.1")

        assert get_client_ip(request, trust_forwarded_for=True) == "198.51.100.1"

    def test_no_client(self):
        """Requests without a peer address have no IP."""
        request = Request({"type": "http", "headers": [], "client": None})

        assert get_client_ip(request) is None
