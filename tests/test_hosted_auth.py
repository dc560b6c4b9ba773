import httpx
import pytest

from jurisly.auth.base import UNVERIFIED_MESSAGE
from jurisly.auth.hosted import HostedAuthProvider, error_message
from jurisly.error_handlers import ErrorCode, ExternalServiceException

from conftest import ANON_KEY, HOSTED_URL


@pytest.fixture
def auth(identity_service):
    client = httpx.AsyncClient(transport=httpx.MockTransport(identity_service.handler))
    return HostedAuthProvider(HOSTED_URL, ANON_KEY, "https://app.example.com", client=client)


async def test_signup_then_login_requires_verification(auth, identity_service):
    signup = await auth.signup("meera@example.com", "secret123", "Meera")
    assert signup.success
    assert signup.message.startswith("Account created! Please check your email")
    assert not signup.user.email_verified

    refused = await auth.login("meera@example.com", "secret123")
    assert not refused.success
    assert refused.error_code == ErrorCode.EMAIL_NOT_VERIFIED
    assert refused.message == UNVERIFIED_MESSAGE

    verified = await auth.verify_email("meera@example.com", identity_service.VERIFICATION_CODE)
    assert verified.success

    login = await auth.login("meera@example.com", "secret123")
    assert login.success
    assert login.session.user.email_verified
    assert login.session.user.display_name == "Meera"


async def test_signup_sends_redirect_and_api_key(auth, identity_service):
    await auth.signup("meera@example.com", "secret123", "Meera")

    request = identity_service.requests[0]
    assert request.headers["apikey"] == ANON_KEY
    assert request.url.params["redirect_to"] == "https://app.example.com/auth/verify"


async def test_duplicate_signup_detected_from_empty_identities(auth):
    await auth.signup("meera@example.com", "secret123", "Meera")

    again = await auth.signup("meera@example.com", "secret123", "Meera")

    assert not again.success
    assert again.error_code == ErrorCode.ACCOUNT_EXISTS


async def test_bad_credentials_pass_platform_text(auth):
    result = await auth.login("nobody@example.com", "x")

    assert not result.success
    assert result.error_code == ErrorCode.INVALID_CREDENTIALS
    assert result.message == "Invalid login credentials"


async def test_get_user_and_metadata_update(auth, identity_service):
    await auth.signup("meera@example.com", "secret123", "Meera")
    await auth.verify_email("meera@example.com", identity_service.VERIFICATION_CODE)
    token = (await auth.login("meera@example.com", "secret123")).session.access_token

    updated = await auth.update_profile(token, {"account_type": "Student"})
    assert updated.success
    assert updated.user.metadata["account_type"] == "Student"

    user = await auth.get_user(token)
    assert user.metadata == {"name": "Meera", "account_type": "Student"}

    await auth.logout(token)
    assert await auth.get_user(token) is None


async def test_update_password_reverifies_current(auth, identity_service):
    await auth.signup("meera@example.com", "secret123", "Meera")
    await auth.verify_email("meera@example.com", identity_service.VERIFICATION_CODE)
    token = (await auth.login("meera@example.com", "secret123")).session.access_token

    wrong = await auth.update_password(token, "not-it", "brand-new")
    assert not wrong.success
    assert wrong.message == "Current password is incorrect."

    changed = await auth.update_password(token, "secret123", "brand-new")
    assert changed.success
    assert (await auth.login("meera@example.com", "brand-new")).success


async def test_reset_password_sends_recovery_mail(auth, identity_service):
    result = await auth.reset_password("meera@example.com")

    assert result.success
    assert identity_service.requests[-1].url.path == "/auth/v1/recover"
    assert identity_service.requests[-1].url.params["redirect_to"] == "https://app.example.com/auth/reset-password"


async def test_get_user_raises_when_service_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    auth = HostedAuthProvider(HOSTED_URL, ANON_KEY, "https://app.example.com", client=client)

    with pytest.raises(ExternalServiceException):
        await auth.get_user("token")

    signup = await auth.signup("meera@example.com", "secret123", "Meera")
    assert not signup.success
    assert signup.error_code == ErrorCode.IDENTITY_SERVICE_ERROR


def test_error_message_field_order():
    assert error_message(httpx.Response(400, json={"msg": "a", "error": "b"})) == "a"
    assert error_message(httpx.Response(400, json={"error_description": "c"})) == "c"
    assert error_message(httpx.Response(500, text="")) == "HTTP 500"
