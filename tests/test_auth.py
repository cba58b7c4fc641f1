import smtplib
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import jwt
import pytest

from dietify.auth.mailer import OtpMailer
from dietify.auth.otp import OtpCache, OtpStatus, generate_code
from dietify.auth.tokens import (
    JWT_ALGORITHM, InvalidTokenError, create_access_token, create_refresh_token,
    decode_access_token, decode_refresh_token,
)
from dietify.config import ConfigurationError, settings


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestTokens:
    def test_access_token_claims(self):
        payload = decode_access_token(create_access_token("u1", "a@b.com"))
        assert payload["userId"] == "u1"
        assert payload["email"] == "a@b.com"
        assert payload["type"] == "access"

    def test_refresh_token_carries_jti(self):
        token, jti = create_refresh_token("u1", "a@b.com")
        payload = decode_refresh_token(token)
        assert payload["jti"] == jti
        assert payload["type"] == "refresh"

    def test_tokens_are_not_interchangeable(self):
        refresh, _ = create_refresh_token("u1", "a@b.com")
        with pytest.raises(InvalidTokenError):
            decode_access_token(refresh)
        with pytest.raises(InvalidTokenError):
            decode_refresh_token(create_access_token("u1", "a@b.com"))

    def test_expired(self):
        token = jwt.encode(
            {"userId": "u1", "email": "a@b.com", "type": "access",
             "exp": datetime.now(UTC) - timedelta(minutes=1)},
            settings.jwt_access_secret,
            algorithm=JWT_ALGORITHM,
        )
        with pytest.raises(InvalidTokenError, match="expired"):
            decode_access_token(token)

    def test_garbage(self):
        with pytest.raises(InvalidTokenError):
            decode_access_token("not.a.jwt")


class TestOtpCache:
    def test_codes_are_six_digits(self):
        for _ in range(100):
            code = generate_code()
            assert len(code) == 6 and code.isdigit()

    def test_verify_consumes_code(self):
        cache = OtpCache()
        code = cache.issue("a@b.com")
        assert cache.verify("a@b.com", code).ok
        assert cache.verify("a@b.com", code).status is OtpStatus.NOT_FOUND

    def test_wrong_code_counts_attempts(self):
        cache = OtpCache(max_attempts=3)
        cache.issue("a@b.com", code="123456")
        first = cache.verify("a@b.com", "000001")
        assert first.status is OtpStatus.INVALID
        assert first.remaining_attempts == 2
        assert first.message() == "Invalid OTP. 2 attempts remaining."
        cache.verify("a@b.com", "000002")
        cache.verify("a@b.com", "000003")
        # Even the right code is refused once the budget is spent
        assert cache.verify("a@b.com", "123456").status is OtpStatus.TOO_MANY_ATTEMPTS
        assert "a@b.com" not in cache

    def test_expiry(self):
        clock = FakeClock()
        cache = OtpCache(ttl_seconds=300, clock=clock)
        code = cache.issue("a@b.com")
        clock.now += 301
        assert cache.verify("a@b.com", code).status is OtpStatus.EXPIRED
        assert len(cache) == 0

    def test_reissue_resets_attempts(self):
        cache = OtpCache(max_attempts=1)
        cache.issue("a@b.com", code="111111")
        cache.verify("a@b.com", "222222")
        cache.issue("a@b.com", code="333333")
        assert cache.verify("a@b.com", "333333").ok

    def test_sweep_drops_only_expired(self):
        clock = FakeClock()
        cache = OtpCache(ttl_seconds=60, clock=clock)
        cache.issue("old@b.com")
        clock.now += 30
        cache.issue("new@b.com")
        clock.now += 31
        assert cache.sweep() == 1
        assert "old@b.com" not in cache
        assert "new@b.com" in cache


class TestOtpMailer:
    @pytest.fixture
    def smtp_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "smtp_username", "bot@dietify.in")
        monkeypatch.setattr(settings, "smtp_password", "app-password")
        monkeypatch.setattr(settings, "smtp_from_address", None)

    def test_message_wording(self):
        msg = OtpMailer().build_message("a@b.com", "424242", True, "bot@dietify.in")
        assert msg["Subject"] == "Welcome to Dietify - Your Login Code"
        assert "424242" in msg.as_string()
        returning = OtpMailer().build_message("a@b.com", "424242", False, "bot@dietify.in")
        assert returning["Subject"] == "Your Dietify Login Code"

    @pytest.mark.asyncio
    async def test_sends_via_smtp(self, smtp_settings):
        with patch("dietify.auth.mailer.smtplib.SMTP") as smtp_cls:
            server = MagicMock()
            smtp_cls.return_value.__enter__.return_value = server
            sent = await OtpMailer().send_code("a@b.com", "424242")

        assert sent is True
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("bot@dietify.in", "app-password")
        from_address, recipients, body = server.sendmail.call_args.args
        assert from_address == "bot@dietify.in"
        assert recipients == ["a@b.com"]
        assert "424242" in body

    @pytest.mark.asyncio
    async def test_smtp_failure_returns_false(self, smtp_settings):
        with patch("dietify.auth.mailer.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value.login.side_effect = (
                smtplib.SMTPAuthenticationError(535, b"bad credentials")
            )
            assert await OtpMailer().send_code("a@b.com", "424242") is False

    @pytest.mark.asyncio
    async def test_missing_credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "smtp_username", None)
        with pytest.raises(ConfigurationError):
            await OtpMailer().send_code("a@b.com", "424242")
