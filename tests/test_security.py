"""Tests for API key and session authentication."""

from types import SimpleNamespace

import httpx
import pytest
from fastapi.security import HTTPAuthorizationCredentials

from conftest import RouteStub
from stream_ingest.api.security import (
    APIKeyValidator,
    SessionUser,
    SessionValidator,
    generate_api_key,
    get_security_schemes,
    hash_api_key,
    mask_api_key,
)
from stream_ingest.core.constants import ErrorCodes
from stream_ingest.core.exceptions import ConfigurationError, UnauthorizedError, UpstreamError

PROVIDER = "https://auth.example.com"
ACCOUNT_URL = f"{PROVIDER}/v2/account"


def fake_request() -> SimpleNamespace:
    return SimpleNamespace(state=SimpleNamespace())


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestAPIKeyValidator:
    """Test API key validation."""

    def test_validate(self):
        validator = APIKeyValidator(valid_keys=["key-one", "key-two"])
        assert validator.validate("key-two")
        assert not validator.validate("key-three")
        assert not validator.validate("")

    def test_required_when_keys_configured(self):
        assert APIKeyValidator(valid_keys=["k"]).required is True
        assert APIKeyValidator(valid_keys=[]).required is False

    def test_required_by_setting(self, configure):
        configure(auth_require_key="true")
        assert APIKeyValidator(valid_keys=[]).required is True

    def test_keys_from_environment(self, configure):
        configure(api_keys="alpha, beta")
        validator = APIKeyValidator()
        assert validator.validate("beta")
        assert validator.required

    @pytest.mark.asyncio
    async def test_missing_key(self):
        """
        Given keys are configured
        When a request carries no key
        Then it is rejected as unauthorized
        """
        validator = APIKeyValidator(valid_keys=["k"])
        with pytest.raises(UnauthorizedError, match="required"):
            await validator(fake_request(), None)

    @pytest.mark.asyncio
    async def test_invalid_key(self):
        validator = APIKeyValidator(valid_keys=["k"])
        with pytest.raises(UnauthorizedError) as exc_info:
            await validator(fake_request(), "wrong")
        assert exc_info.value.error_code == ErrorCodes.INVALID_API_KEY
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_valid_key_context(self):
        request = fake_request()
        validator = APIKeyValidator(valid_keys=["sk_live_abcdef123"])

        context = await validator(request, "sk_live_abcdef123")

        assert context.api_key == "sk_l...f123"
        assert context.key_hash == hash_api_key("sk_live_abcdef123")[:16]
        assert request.state.api_key == context.key_hash

    @pytest.mark.asyncio
    async def test_optional_without_keys(self):
        assert await APIKeyValidator(valid_keys=[])(fake_request(), None) is None


class TestSessionValidator:
    """Test session validation against the identity provider."""

    def validator(self, stub: RouteStub, **kwargs) -> SessionValidator:
        return SessionValidator(provider_url=PROVIDER, client=stub.http_client(), **kwargs)

    @pytest.mark.asyncio
    async def test_valid_session(self, http_stub: RouteStub):
        http_stub.on("GET", ACCOUNT_URL, json_body={"user": {"id": "u-42", "username": "alice"}})

        user = await self.validator(http_stub).validate("session-token")

        assert user == SessionUser(user_id="u-42", username="alice")
        assert http_stub.calls[0].headers["Authorization"] == "Bearer session-token"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403, 404])
    async def test_rejected_session(self, http_stub: RouteStub, status):
        http_stub.on("GET", ACCOUNT_URL, status=status)
        with pytest.raises(UnauthorizedError, match="Invalid or expired session"):
            await self.validator(http_stub).validate("expired")

    @pytest.mark.asyncio
    async def test_provider_error(self, http_stub: RouteStub):
        http_stub.on("GET", ACCOUNT_URL, status=500, content=b"down")
        with pytest.raises(UpstreamError) as exc_info:
            await self.validator(http_stub).validate("token")
        assert exc_info.value.upstream_status == 500

    @pytest.mark.asyncio
    async def test_provider_unreachable(self):
        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timeout", request=request)

        validator = SessionValidator(
            provider_url=PROVIDER,
            client=httpx.AsyncClient(transport=httpx.MockTransport(fail)),
        )
        with pytest.raises(UpstreamError, match="unreachable"):
            await validator.validate("token")

    @pytest.mark.asyncio
    async def test_unexpected_payload(self, http_stub: RouteStub):
        http_stub.on("GET", ACCOUNT_URL, json_body={"account": {}})
        with pytest.raises(UpstreamError, match="unexpected"):
            await self.validator(http_stub).validate("token")

    @pytest.mark.asyncio
    async def test_no_provider_configured(self):
        with pytest.raises(ConfigurationError):
            await SessionValidator(provider_url="").validate("token")

    @pytest.mark.asyncio
    async def test_optional_session_without_header(self, http_stub: RouteStub):
        assert await self.validator(http_stub, required=False)(fake_request(), None) is None
        assert http_stub.calls == []

    @pytest.mark.asyncio
    async def test_required_session_without_header(self, http_stub: RouteStub):
        with pytest.raises(UnauthorizedError):
            await self.validator(http_stub, required=True)(fake_request(), None)

    @pytest.mark.asyncio
    async def test_stray_header_ignored_when_sessions_off(self):
        validator = SessionValidator(provider_url="", required=False)
        assert await validator(fake_request(), bearer("anything")) is None

    @pytest.mark.asyncio
    async def test_call_sets_request_user(self, http_stub: RouteStub):
        http_stub.on("GET", ACCOUNT_URL, json_body={"user": {"id": "u-1", "username": "bob"}})
        request = fake_request()

        user = await self.validator(http_stub)(request, bearer("tok"))

        assert user.username == "bob"
        assert request.state.user_id == "u-1"


class TestSecurityHelpers:
    """Test key helpers and OpenAPI schemes."""

    def test_generate_api_key_is_unique(self):
        first, second = generate_api_key(), generate_api_key()
        assert first != second
        assert len(first) >= 40

    def test_hash_is_sha256_hex(self):
        assert len(hash_api_key("abc")) == 64
        assert hash_api_key("abc") == hash_api_key("abc")

    @pytest.mark.parametrize(
        "key,masked",
        [("short", "*****"), ("12345678", "********"), ("sk_test_123456789", "sk_t...6789")],
    )
    def test_mask_api_key(self, key, masked):
        assert mask_api_key(key) == masked

    def test_security_schemes(self):
        schemes = get_security_schemes()
        assert schemes["ApiKeyAuth"]["name"] == "X-API-Key"
        assert schemes["BearerAuth"]["scheme"] == "bearer"
