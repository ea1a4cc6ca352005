"""
Unit Tests for the Two-Factor Service, Notifiers and Reaper
===========================================================
"""

import smtplib
from datetime import datetime, timezone
from urllib.parse import parse_qs
from unittest.mock import MagicMock, patch

import httpx
import pytest

from twofa_core.config import NotifierConfig, VerificationConfig
from twofa_core.engine import CodeVerificationEngine
from twofa_core.exceptions import NotificationError, ResendCooldownError
from twofa_core.models import DeliveryChannel, VerificationStatus
from twofa_core.notifiers import EmailNotifier, LogNotifier, Notifier, SmsNotifier, get_notifier
from twofa_core.reaper import ExpiredRecordReaper
from twofa_core.service import TwoFactorService

from conftest import BrokenStore

EXPIRES = datetime(2026, 1, 1, 0, 10, tzinfo=timezone.utc)


class FlakyNotifier(Notifier):
    """Remembers the code, then fails delivery."""

    channel = DeliveryChannel.SMS

    def __init__(self):
        super().__init__()
        self.codes = []

    async def notify(self, principal_id, code, expires_at):
        self.codes.append(code)
        raise NotificationError("provider down", channel=self.channel.value, status_code=503)


@pytest.fixture
def notifier():
    return LogNotifier()


@pytest.fixture
def service(engine, notifier):
    return TwoFactorService(engine, notifier)


class TestTwoFactorService:
    """Tests for the caller-side flow."""

    @pytest.mark.asyncio
    async def test_start_delivers_code(self, service, notifier):
        """Issued code should reach the notifier and verify."""
        report = await service.start("42")

        assert report.delivered is True
        assert report.channel == DeliveryChannel.LOG
        code = notifier.last_code("42")
        assert code is not None
        assert (await service.verify("42", code)).ok

    @pytest.mark.asyncio
    async def test_failed_delivery_keeps_code_valid(self, engine):
        """Notifier failure should not roll back issuance."""
        notifier = FlakyNotifier()
        service = TwoFactorService(engine, notifier)

        report = await service.start("42")

        assert report.delivered is False
        assert "provider down" in report.error
        assert (await service.verify("42", notifier.codes[0])).ok

    @pytest.mark.asyncio
    async def test_resend_cooldown(self, service, notifier, clock):
        """Resend is refused until the cooldown has elapsed."""
        await service.start("42")
        first_code = notifier.last_code("42")

        clock.advance(seconds=20)
        with pytest.raises(ResendCooldownError) as exc_info:
            await service.resend("42")
        assert exc_info.value.retry_after == 40

        clock.advance(seconds=40)
        report = await service.resend("42")
        assert report.delivered is True

        second_code = notifier.last_code("42")
        if second_code != first_code:
            result = await service.verify("42", first_code)
            assert result.status == VerificationStatus.MISMATCH
        assert (await service.verify("42", second_code)).ok

    @pytest.mark.asyncio
    async def test_resend_without_challenge(self, service):
        """Resend with no prior challenge is allowed immediately."""
        assert await service.retry_after("42") == 0

        report = await service.resend("42")

        assert report.delivered is True

    @pytest.mark.asyncio
    async def test_cancel(self, service, notifier):
        """Cancelled challenge should no longer verify."""
        await service.start("42")

        assert await service.cancel("42") is True

        result = await service.verify("42", notifier.last_code("42"))
        assert result.status == VerificationStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delivery_metrics(self, engine):
        """Delivery outcomes should be counted per channel."""
        service = TwoFactorService(engine, FlakyNotifier())

        await service.start("42")

        assert engine.metrics.get_counter(
            "twofa_notifications", labels={"channel": "sms", "delivered": "false"}
        ) == 1

    @pytest.mark.asyncio
    async def test_sms_without_json_body_is_delivered(self, engine):
        """A 201 with a non-JSON body is still a delivered message."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(201, text="queued")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service = TwoFactorService(engine, SmsNotifier(NotifierConfig(sms_account_sid="AC123"), client=client))

        report = await service.start("+15550001")

        assert report.delivered is True
        await client.aclose()

    @pytest.mark.asyncio
    async def test_recipient_lookup_error_is_reported(self, engine):
        """Errors raised by the recipient lookup become an undelivered report."""
        def lookup(principal_id):
            raise KeyError(principal_id)

        service = TwoFactorService(engine, LogNotifier(recipient_lookup=lookup))

        report = await service.start("42")

        assert report.delivered is False
        assert "42" in report.error
        assert await engine.issued_at("42") is not None


class TestNotifiers:
    """Tests for email, SMS and log notifiers."""

    def test_get_notifier_by_channel(self):
        """Configuration should select the notifier."""
        assert isinstance(get_notifier(VerificationConfig(secret_key="k", channel="email")), EmailNotifier)
        assert isinstance(get_notifier(VerificationConfig(secret_key="k", channel="sms")), SmsNotifier)
        assert isinstance(get_notifier(VerificationConfig(secret_key="k")), LogNotifier)

    @pytest.mark.asyncio
    async def test_async_recipient_lookup(self):
        """Recipient lookup may be a coroutine function."""
        async def lookup(principal_id):
            return f"user{principal_id}@example.com"

        notifier = LogNotifier(recipient_lookup=lookup)
        await notifier.notify("42", "123456", EXPIRES)

        assert notifier.last_code("user42@example.com") == "123456"

    @pytest.mark.asyncio
    async def test_missing_recipient(self):
        """Unknown address should raise NotificationError."""
        notifier = LogNotifier(recipient_lookup=lambda principal_id: None)

        with pytest.raises(NotificationError):
            await notifier.notify("42", "123456", EXPIRES)

    @pytest.mark.asyncio
    async def test_sms_notifier_posts_message(self):
        """SMS notifier should post the code to the Messages API."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"sid": "SM123", "status": "queued"})

        config = NotifierConfig(sms_account_sid="AC123", sms_auth_token="t", sms_from_number="+15550000000")
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = SmsNotifier(config, recipient_lookup=lambda p: "+14155551234", client=client)

        await notifier.notify("42", "123456", EXPIRES)

        assert len(requests) == 1
        assert requests[0].url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        form = parse_qs(requests[0].content.decode())
        assert form["To"] == ["+14155551234"]
        assert "123456" in form["Body"][0]

        await client.aclose()

    @pytest.mark.asyncio
    async def test_sms_notifier_rejected(self):
        """Provider errors should raise NotificationError with the status."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"code": 21211, "message": "Invalid 'To' number"})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = SmsNotifier(NotifierConfig(sms_account_sid="AC123"), client=client)

        with pytest.raises(NotificationError) as exc_info:
            await notifier.notify("42", "123456", EXPIRES)

        assert exc_info.value.status_code == 400
        assert "Invalid 'To' number" in str(exc_info.value)

        await client.aclose()

    @pytest.mark.asyncio
    async def test_email_notifier_sends(self):
        """Email notifier should send one message through SMTP."""
        config = NotifierConfig(smtp_host="mail.local", smtp_port=25, smtp_starttls=False, smtp_username=None)
        notifier = EmailNotifier(config, recipient_lookup=lambda p: "user@example.com")

        with patch("twofa_core.notifiers.smtp.smtplib.SMTP") as mock_smtp:
            server = mock_smtp.return_value.__enter__.return_value
            await notifier.notify("42", "123456", EXPIRES)

        mock_smtp.assert_called_once_with("mail.local", 25, timeout=config.timeout)
        server.send_message.assert_called_once()
        msg = server.send_message.call_args[0][0]
        assert msg["To"] == "user@example.com"
        assert "123456" in msg.get_content()

    @pytest.mark.asyncio
    async def test_email_notifier_failure(self):
        """SMTP errors should raise NotificationError."""
        notifier = EmailNotifier(NotifierConfig(smtp_starttls=False, smtp_username=None))

        with patch("twofa_core.notifiers.smtp.smtplib.SMTP") as mock_smtp:
            mock_smtp.side_effect = smtplib.SMTPConnectError(421, "unavailable")
            with pytest.raises(NotificationError) as exc_info:
                await notifier.notify("user@example.com", "123456", EXPIRES)

        assert exc_info.value.channel == "email"

    @pytest.mark.asyncio
    async def test_log_outbox_is_bounded(self):
        """Outbox keeps only the most recent entries."""
        notifier = LogNotifier(max_outbox=2)

        for code in ("111111", "222222", "333333"):
            await notifier.notify("42", code, EXPIRES)

        assert len(notifier.outbox) == 2
        assert [entry.code for entry in notifier.outbox] == ["222222", "333333"]
        assert notifier.last_code("42") == "333333"

    def test_render_message_uses_utc(self):
        """Expiry time is converted to UTC before formatting."""
        from datetime import timedelta
        from twofa_core.notifiers.base import render_message

        local = datetime(2026, 1, 1, 2, 10, tzinfo=timezone(timedelta(hours=2)))

        message = render_message("123456", local)

        assert "00:10 UTC" in message
        assert "123456" in message


class TestReaper:
    """Tests for the expired record reaper."""

    @pytest.mark.asyncio
    async def test_run_once_purges(self, engine, store, clock):
        """Expired and consumed records are removed."""
        await engine.issue("expired")
        clock.advance(minutes=11)
        fresh = await engine.issue("fresh")
        await engine.issue("used")
        await engine.invalidate("used")

        reaper = ExpiredRecordReaper(engine)
        removed = await reaper.run_once()

        assert removed == 2
        assert len(store) == 1
        assert (await engine.verify("fresh", fresh.code)).ok

    @pytest.mark.asyncio
    async def test_store_failure_is_logged(self, config, clock):
        """Store failures do not escape the reaper."""
        engine = CodeVerificationEngine(BrokenStore(fail_on=("purge_expired",)), config=config, clock=clock)
        reaper = ExpiredRecordReaper(engine)

        assert await reaper.run_once() == 0
        assert reaper.stats["failures"] == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self, engine):
        """Background task runs and can be cancelled."""
        import asyncio

        reaper = ExpiredRecordReaper(engine, interval_seconds=3600)
        reaper.start()
        await asyncio.sleep(0)
        assert reaper.is_running

        await reaper.stop()

        assert not reaper.is_running
        assert reaper.stats["runs"] == 1
