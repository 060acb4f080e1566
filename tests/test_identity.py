import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from conftest import JWKS_URL, KID
from docgate.errors import InvalidCredential, MalformedCredential, MissingCredential
from docgate.models.db_models import hash_key
from docgate.services.identity import AuthMethod, JWKSCache, looks_like_api_key


# =============================================================================
# Header parsing
# =============================================================================

async def test_missing_header(services):
    with pytest.raises(MissingCredential):
        await services.identity.resolve(None)
    with pytest.raises(MissingCredential):
        await services.identity.resolve("   ")


@pytest.mark.parametrize("header", ["Basic abc", "Token xyz", "Bearer", "Bearer    "])
async def test_malformed_header(services, header):
    with pytest.raises(MalformedCredential):
        await services.identity.resolve(header)


def test_api_key_shape():
    prefix = "ak_live_"
    assert looks_like_api_key(prefix + "a" * 64, prefix)
    assert not looks_like_api_key(prefix + "a" * 63, prefix)
    assert not looks_like_api_key(prefix + "A" * 64, prefix)
    assert not looks_like_api_key(prefix + "g" * 64, prefix)
    assert not looks_like_api_key("ak_test_" + "a" * 64, prefix)


# =============================================================================
# Signed tokens
# =============================================================================

async def test_valid_signed_token(services, make_token):
    identity = await services.identity.resolve(f"Bearer {make_token(email='ana@example.com')}")

    assert identity.email == "ana@example.com"
    assert identity.auth_method is AuthMethod.BEARER_TOKEN
    assert identity.user_id is None
    assert identity.is_admin is False


async def test_scheme_is_case_insensitive(services, make_token):
    identity = await services.identity.resolve(f"bearer {make_token()}")
    assert identity.email == "user@example.com"


@pytest.mark.parametrize("roles", [["admin"], "admin", {"admin": True}, ["viewer", "admin"]])
async def test_admin_role_shapes(services, make_token, roles):
    identity = await services.identity.resolve(f"Bearer {make_token(roles=roles)}")
    assert identity.is_admin is True


async def test_other_roles_are_not_admin(services, make_token):
    identity = await services.identity.resolve(f"Bearer {make_token(roles=['editor'])}")
    assert identity.roles == ("editor",)
    assert identity.is_admin is False


async def test_issuer_mismatch(services, make_token):
    with pytest.raises(InvalidCredential):
        await services.identity.resolve(f"Bearer {make_token(issuer='https://evil.example.test')}")


async def test_expired_token(services, make_token):
    with pytest.raises(InvalidCredential, match="expired"):
        await services.identity.resolve(f"Bearer {make_token(expires_in=-60)}")


async def test_missing_email_claim(services, make_token):
    with pytest.raises(InvalidCredential, match="email"):
        await services.identity.resolve(f"Bearer {make_token(email=None)}")


async def test_missing_kid(services, make_token):
    with pytest.raises(InvalidCredential, match="key id"):
        await services.identity.resolve(f"Bearer {make_token(kid=None)}")


async def test_symmetric_algorithm_rejected(services, make_token):
    token = make_token(key="shared-secret-that-is-long-enough-for-hs256", algorithm="HS256")
    with pytest.raises(InvalidCredential, match="algorithm"):
        await services.identity.resolve(f"Bearer {token}")


async def test_wrong_signing_key(services, make_token):
    other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with pytest.raises(InvalidCredential):
        await services.identity.resolve(f"Bearer {make_token(key=other)}")


async def test_garbage_token(services):
    with pytest.raises(InvalidCredential):
        await services.identity.resolve("Bearer not.a.jwt")


async def test_key_set_is_cached(services, upstream, make_token):
    await services.identity.resolve(f"Bearer {make_token()}")
    await services.identity.resolve(f"Bearer {make_token(email='second@example.com')}")
    assert upstream.jwks_fetches == 1


async def test_unknown_kid_refreshes_once(services, upstream, make_token):
    await services.identity.resolve(f"Bearer {make_token()}")
    assert upstream.jwks_fetches == 1

    with pytest.raises(InvalidCredential, match="unknown key"):
        await services.identity.resolve(f"Bearer {make_token(kid='rotated-away')}")
    assert upstream.jwks_fetches == 2


async def test_key_set_unreachable(services, upstream, make_token):
    upstream.jwks_error = httpx.ConnectError
    with pytest.raises(InvalidCredential):
        await services.identity.resolve(f"Bearer {make_token()}")


@pytest.mark.parametrize("settings_overrides", [{"auth_issuer_url": None}])
async def test_no_trusted_issuer_configured(services, make_token):
    with pytest.raises(InvalidCredential, match="issuer"):
        await services.identity.resolve(f"Bearer {make_token()}")


async def test_stale_key_set_served_when_refresh_fails(upstream):
    now = [1000.0]
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
        cache = JWKSCache(http, ttl=60, clock=lambda: now[0])
        first = await cache.get_signing_key(JWKS_URL, KID)

        now[0] += 120
        upstream.jwks_error = httpx.ConnectError
        stale = await cache.get_signing_key(JWKS_URL, KID)

    assert stale is first


async def test_key_set_refreshed_after_ttl(upstream):
    now = [1000.0]
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
        cache = JWKSCache(http, ttl=60, clock=lambda: now[0])
        await cache.get_signing_key(JWKS_URL, KID)
        now[0] += 30
        await cache.get_signing_key(JWKS_URL, KID)
        assert upstream.jwks_fetches == 1

        now[0] += 60
        await cache.get_signing_key(JWKS_URL, KID)
        assert upstream.jwks_fetches == 2


# =============================================================================
# API keys
# =============================================================================

async def test_api_key_resolves_to_owner(services, make_account):
    user_id = await make_account(email="keyholder@example.com")
    api_key, full_key = await services.keys.create_key(user_id, "keyholder@example.com", "ci")

    identity = await services.identity.resolve(f"Bearer {full_key}")

    assert identity.auth_method is AuthMethod.API_KEY
    assert identity.user_id == user_id
    assert identity.email == "keyholder@example.com"
    assert identity.key_prefix == api_key.key_prefix


async def test_api_key_usage_is_tracked(services, make_account):
    user_id = await make_account()
    _, full_key = await services.keys.create_key(user_id, "user@example.com", "ci")

    await services.identity.resolve(f"Bearer {full_key}")
    await services.identity.resolve(f"Bearer {full_key}")
    await services.identity.wait_idle()

    stored = await services.identity.key_store.get_by_hash(hash_key(full_key))
    assert stored.usage_count == 2
    assert stored.last_used_at is not None


async def test_unknown_api_key(services):
    with pytest.raises(InvalidCredential):
        await services.identity.resolve("Bearer ak_live_" + "0" * 64)


async def test_inactive_api_key(services, make_account):
    user_id = await make_account()
    _, full_key = await services.keys.create_key(user_id, "user@example.com", "ci")
    await services.keys.update_key(user_id, is_active=False)

    with pytest.raises(InvalidCredential, match="inactive"):
        await services.identity.resolve(f"Bearer {full_key}")


async def test_api_key_refused_where_signed_token_required(services, make_account):
    user_id = await make_account()
    _, full_key = await services.keys.create_key(user_id, "user@example.com", "ci")

    with pytest.raises(InvalidCredential, match="not accepted"):
        await services.identity.resolve(f"Bearer {full_key}", allow_api_key=False)
