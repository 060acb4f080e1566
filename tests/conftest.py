import json
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from docgate.config import Settings
from docgate.main import create_app

ISSUER = "https://auth.example.test"
JWKS_URL = f"{ISSUER}/.well-known/jwks.json"
KID = "test-key-1"
UPSTREAM = "https://upstream.test"

IMAGE = "aGVsbG8gd29ybGQgaW1hZ2U="


class FakeUpstream:
    """
    httpx.MockTransport handler standing in for the identity provider's key
    set and every upstream operation.
    """

    def __init__(self, jwks: Dict[str, Any]):
        self.jwks = jwks
        self.jwks_fetches = 0
        self.jwks_error: Optional[type] = None
        self.responses: Dict[str, Tuple[int, Any, Optional[bytes], Optional[type]]] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def respond(self, operation: str, body: Any = None, status: int = 200, raw: Optional[bytes] = None, error=None):
        self.responses[operation] = (status, body, raw, error)

    def calls_to(self, operation: str) -> List[Dict[str, Any]]:
        return [payload for op, payload in self.calls if op == operation]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == JWKS_URL:
            self.jwks_fetches += 1
            if self.jwks_error is not None:
                raise self.jwks_error("key set down", request=request)
            return httpx.Response(200, json=self.jwks)

        operation = request.url.path.strip("/")
        payload = json.loads(request.content)
        self.calls.append((operation, payload))

        default = {"req_id": payload.get("req_id"), "success": True, "result": "ok"}
        status, body, raw, error = self.responses.get(operation, (200, default, None, None))
        if error is not None:
            raise error("upstream down", request=request)
        if raw is not None:
            return httpx.Response(status, content=raw)
        return httpx.Response(status, json=body)


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def jwks(rsa_key) -> Dict[str, Any]:
    jwk = json.loads(jwt.algorithms.RSAAlgorithm.to_jwk(rsa_key.public_key()))
    jwk.update(kid=KID, alg="RS256", use="sig")
    return {"keys": [jwk]}


@pytest.fixture
def upstream(jwks) -> FakeUpstream:
    return FakeUpstream(jwks)


@pytest.fixture
def settings_overrides() -> Dict[str, Any]:
    """Override per test module to change configuration."""
    return {}


@pytest.fixture
def settings(tmp_path, settings_overrides) -> Settings:
    values = dict(
        database_url=f"sqlite:///{tmp_path / 'docgate-test.db'}",
        auth_issuer_url=ISSUER,
        rate_limit_enabled=False,
        log_format="console",
        log_level="WARNING",
        qr_masking_api_url=f"{UPSTREAM}/qr-masking",
        qr_extraction_api_url=f"{UPSTREAM}/qr-extraction",
        id_cropping_api_url=f"{UPSTREAM}/id-cropping",
        signature_verification_api_url=f"{UPSTREAM}/signature-verification",
        face_detection_api_url=f"{UPSTREAM}/face-detect",
        face_verification_api_url=f"{UPSTREAM}/face-verification",
    )
    values.update(settings_overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
async def app(settings, upstream):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    application = create_app(settings, http_client=http_client)
    async with application.router.lifespan_context(application):
        yield application
    await http_client.aclose()


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
def make_token(rsa_key):
    def _make(
        email: Optional[str] = "user@example.com",
        roles: Any = None,
        issuer: str = ISSUER,
        kid: Optional[str] = KID,
        expires_in: int = 300,
        key=None,
        algorithm: str = "RS256",
    ) -> str:
        now = int(time.time())
        payload: Dict[str, Any] = {"iss": issuer, "sub": email or "nobody", "iat": now, "exp": now + expires_in}
        if email is not None:
            payload["email"] = email
        if roles is not None:
            payload["roles"] = roles
        headers = {"kid": kid} if kid else {}
        return jwt.encode(payload, key if key is not None else rsa_key, algorithm=algorithm, headers=headers)

    return _make


@pytest.fixture
def admin_token(make_token) -> str:
    return make_token(email="admin@example.com", roles=["admin"])


@pytest.fixture
def make_account(services):
    async def _make(email: str = "user@example.com", balance: int = 10, user_id: Optional[str] = None) -> str:
        accounts = services.ledger.accounts
        user_id = user_id or email
        async with accounts.transaction() as session:
            await accounts.create(user_id, email, session=session)
            if balance:
                await accounts.credit(user_id, balance, session=session)
        return user_id

    return _make


def bearer(credential: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {credential}"}
