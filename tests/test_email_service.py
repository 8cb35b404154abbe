import os
import unittest
from unittest.mock import Mock, patch

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import httpx

from taxintake.core.config import settings
from taxintake.services.email_service import EmailDeliveryError, build_invite_message, send_invite_email

INVITE = {
    "email": "Heir@Example.com",
    "link": "https://intake.example.com/intake/abc",
    "form_code": "1041",
    "tax_year": 2024,
    "expires_at": "2024-12-31",
}


class EmailServiceTests(unittest.TestCase):
    def setUp(self):
        self._backup = {
            "EMAIL_PROVIDER": settings.EMAIL_PROVIDER,
            "EMAIL_SERVICE_URL": settings.EMAIL_SERVICE_URL,
            "INTERNAL_SERVICE_TOKEN": settings.INTERNAL_SERVICE_TOKEN,
            "SMTP_HOST": settings.SMTP_HOST,
            "SMTP_FROM": settings.SMTP_FROM,
            "INVITE_EMAIL_TEMPLATE": settings.INVITE_EMAIL_TEMPLATE,
        }

    def tearDown(self):
        for key, value in self._backup.items():
            setattr(settings, key, value)

    def test_dummy_provider_mocks_send(self):
        settings.EMAIL_PROVIDER = "dummy"
        with self.assertLogs("taxintake.email", level="WARNING"):
            payload = send_invite_email(**INVITE)
        self.assertEqual(payload.get("provider"), "mock_email")
        self.assertFalse(payload.get("sent"))

    def test_service_provider_calls_internal_email_service(self):
        settings.EMAIL_PROVIDER = "service"
        settings.EMAIL_SERVICE_URL = "http://email-service:8010/"
        settings.INTERNAL_SERVICE_TOKEN = "token"

        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.content = b'{"status":"sent"}'
        mock_response.json.return_value = {"status": "sent"}

        mock_client = Mock()
        mock_client.__enter__ = Mock(return_value=mock_client)
        mock_client.__exit__ = Mock(return_value=False)
        mock_client.post.return_value = mock_response

        with patch("taxintake.services.email_service.httpx.Client", return_value=mock_client):
            payload = send_invite_email(**INVITE)
        self.assertEqual(payload.get("provider"), "email-service")
        self.assertTrue(bool(payload.get("sent")))

        url = mock_client.post.call_args.args[0]
        self.assertEqual(url, "http://email-service:8010/internal/send-email")
        sent = mock_client.post.call_args.kwargs["json"]
        self.assertEqual(sent["email"], "heir@example.com")
        self.assertIn(INVITE["link"], sent["body"])
        self.assertEqual(mock_client.post.call_args.kwargs["headers"]["X-Internal-Token"], "token")

    def test_service_error_raises(self):
        settings.EMAIL_PROVIDER = "service"
        settings.INTERNAL_SERVICE_TOKEN = "token"

        mock_response = Mock()
        mock_response.status_code = 503
        mock_response.content = b'{"detail":"queue full"}'
        mock_response.json.return_value = {"detail": "queue full"}
        mock_client = Mock()
        mock_client.__enter__ = Mock(return_value=mock_client)
        mock_client.__exit__ = Mock(return_value=False)
        mock_client.post.return_value = mock_response

        with patch("taxintake.services.email_service.httpx.Client", return_value=mock_client):
            with self.assertRaises(EmailDeliveryError) as ctx:
                send_invite_email(**INVITE)
        self.assertIn("queue full", str(ctx.exception))

        mock_client.post.side_effect = httpx.ConnectError("refused")
        with patch("taxintake.services.email_service.httpx.Client", return_value=mock_client):
            with self.assertRaises(EmailDeliveryError):
                send_invite_email(**INVITE)

    def test_smtp_without_configuration_raises(self):
        settings.EMAIL_PROVIDER = "smtp"
        settings.SMTP_HOST = ""
        settings.SMTP_FROM = ""
        with self.assertRaises(EmailDeliveryError):
            send_invite_email(**INVITE)

    def test_unknown_provider_raises(self):
        settings.EMAIL_PROVIDER = "unknown"
        with self.assertRaises(EmailDeliveryError):
            send_invite_email(**INVITE)

    def test_invalid_address_raises(self):
        settings.EMAIL_PROVIDER = "dummy"
        with self.assertRaises(EmailDeliveryError):
            send_invite_email(**{**INVITE, "email": "not-an-address"})

    def test_broken_template_falls_back(self):
        settings.INVITE_EMAIL_TEMPLATE = "Hello {client_name}"
        with self.assertLogs("taxintake.email", level="WARNING"):
            subject, body = build_invite_message(
                link=INVITE["link"], form_code="1041", tax_year=2024, expires_at="2024-12-31"
            )
        self.assertIn("1041", subject)
        self.assertIn(INVITE["link"], body)
