"""Tests for verification email rendering and provider selection."""

from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from echat.config import get_settings
from echat.email.service import (
    ConsoleProvider,
    EmailService,
    ResendProvider,
    SMTPProvider,
    _create_provider,
    get_email_service,
)
from echat.email.templates import register_code, reset_code
from echat.verification.service import CodeType


class TestTemplates:
    def test_register_code(self):
        subject, html_body, text_body = register_code("482913", 10, "Enterprise Chat")
        assert subject == "Your Enterprise Chat verification code"
        assert "482913" in html_body
        assert "482913" in text_body
        assert "10 minutes" in text_body

    def test_reset_code(self):
        subject, html_body, text_body = reset_code("482913", 15, "Enterprise Chat")
        assert subject == "Reset your Enterprise Chat password"
        assert "482913" in html_body
        assert "15 minutes" in text_body


class TestProviderSelection:
    @pytest.mark.parametrize(
        ("name", "cls"),
        [("console", ConsoleProvider), ("SMTP", SMTPProvider), ("resend", ResendProvider)],
    )
    def test_configured_provider(self, monkeypatch, name, cls):
        monkeypatch.setenv("ECHAT_EMAIL_PROVIDER", name)
        get_settings.cache_clear()
        assert isinstance(_create_provider(), cls)

    def test_unsupported_provider(self, monkeypatch):
        monkeypatch.setenv("ECHAT_EMAIL_PROVIDER", "pigeon")
        get_settings.cache_clear()
        with pytest.raises(ValueError, match="Unsupported email provider"):
            _create_provider()

    def test_singleton(self):
        assert get_email_service() is get_email_service()


class TestEmailService:
    @pytest.mark.asyncio
    async def test_register_code_uses_register_template(self):
        provider = AsyncMock()
        provider.send.return_value = True

        assert await EmailService(provider).send_verification_code("a@acme.io", "123456", CodeType.REGISTER)

        to, subject, html_body, text_body = provider.send.call_args.args
        assert to == "a@acme.io"
        assert "verification code" in subject
        assert "123456" in text_body

    @pytest.mark.asyncio
    async def test_reset_code_uses_reset_template(self):
        provider = AsyncMock()
        provider.send.return_value = False

        assert not await EmailService(provider).send_verification_code("a@acme.io", "123456", CodeType.RESET_PASSWORD)
        assert provider.send.call_args.args[1].startswith("Reset your")

    @pytest.mark.asyncio
    async def test_console_provider_succeeds(self):
        assert await ConsoleProvider().send("a@acme.io", "s", "<p>h</p>", "t")

    @pytest.mark.asyncio
    async def test_smtp_failure_returns_false(self):
        provider = SMTPProvider("localhost", 2525, "", "", "noreply@acme.io", "Enterprise Chat", use_tls=False)
        with patch("echat.email.service.aiosmtplib.send", AsyncMock(side_effect=aiosmtplib.SMTPException("down"))):
            assert not await provider.send("a@acme.io", "s", "<p>h</p>", "t")
