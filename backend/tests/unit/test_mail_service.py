from unittest.mock import MagicMock, patch

import pytest

from chickenscratch.core.config import ResendConfig, SMTPConfig
from chickenscratch.core.mail import EmailService


def _smtp_config() -> SMTPConfig:
    return SMTPConfig(
        host="smtp.example.com",
        port=587,
        user="user@example.com",
        password="secret",
        from_email="no-reply@example.com",
        use_starttls=True,
    )


def _resend_config() -> ResendConfig:
    return ResendConfig(api_key="re_test", sender="Chicken Scratch <notifications@example.com>")


@pytest.mark.unit
def test_smtp_send_success():
    service = EmailService(smtp_config=_smtp_config(), resend_config=None)
    with patch("chickenscratch.core.mail.smtplib.SMTP") as smtp:
        server = MagicMock()
        smtp.return_value.__enter__.return_value = server

        result = service.send_email(
            to=["to@example.com", "cc@example.com"],
            subject="Test Subject",
            html_body="<p>Hello</p>",
            text_body="Hello",
        )
        assert result.ok is True
        assert result.dry_run is False
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user@example.com", "secret")
        args = server.sendmail.call_args.args
        assert args[1] == ["to@example.com", "cc@example.com"]


@pytest.mark.unit
def test_smtp_failure_does_not_raise():
    service = EmailService(smtp_config=_smtp_config(), resend_config=None)
    with patch("chickenscratch.core.mail.smtplib.SMTP") as smtp:
        server = MagicMock()
        server.sendmail.side_effect = RuntimeError("smtp down")
        smtp.return_value.__enter__.return_value = server

        result = service.send_email(to=["to@example.com"], subject="s", html_body="<p>x</p>")
        assert result.ok is False
        assert "smtp down" in result.error


@pytest.mark.unit
def test_resend_preferred_over_smtp():
    service = EmailService(smtp_config=_smtp_config(), resend_config=_resend_config())
    with patch("chickenscratch.core.mail.resend.Emails.send", return_value={"id": "re_123"}) as send, patch(
        "chickenscratch.core.mail.smtplib.SMTP"
    ) as smtp:
        result = service.send_email(to=["to@example.com"], subject="Hi", html_body="<p>x</p>")

    assert result.ok is True
    assert result.provider_id == "re_123"
    payload = send.call_args.args[0]
    assert payload["to"] == ["to@example.com"]
    assert payload["from"] == "Chicken Scratch <notifications@example.com>"
    smtp.assert_not_called()


@pytest.mark.unit
def test_resend_failure_returns_error():
    service = EmailService(smtp_config=None, resend_config=_resend_config())
    with patch("chickenscratch.core.mail.resend.Emails.send", side_effect=RuntimeError("rate limited")):
        result = service.send_email(to=["to@example.com"], subject="Hi", html_body="<p>x</p>")
    assert result.ok is False
    assert result.error == "rate limited"


@pytest.mark.unit
def test_dry_mode_when_no_provider():
    service = EmailService(smtp_config=None, resend_config=None)
    assert service.is_configured() is False
    result = service.send_email(to=["to@example.com"], subject="s", html_body="<p>x</p>")
    assert result.ok is True
    assert result.dry_run is True


@pytest.mark.unit
def test_empty_recipient_list_is_noop():
    service = EmailService(smtp_config=_smtp_config(), resend_config=None)
    with patch("chickenscratch.core.mail.smtplib.SMTP") as smtp:
        result = service.send_email(to=["", None], subject="s", html_body="<p>x</p>")  # type: ignore[list-item]
    assert result.ok is True
    smtp.assert_not_called()


@pytest.mark.unit
def test_render_escapes_user_content():
    service = EmailService(smtp_config=None, resend_config=None)
    html = service.render_template(
        "committee_assignment.html",
        {"subject": "s", "title": "<script>alert(1)</script>", "status_label": "Coordinator Approved"},
    )
    assert "<script>alert(1)</script>" not in html
    assert "&lt;script&gt;" in html


@pytest.mark.unit
def test_template_render_failure_is_reported():
    service = EmailService(smtp_config=_smtp_config(), resend_config=None)
    with patch.object(service, "render_template", side_effect=RuntimeError("bad template")):
        result = service.send_template_email(to=["to@example.com"], subject="s", template_name="x.html", context={})
    assert result.ok is False
    assert "template render failed" in result.error
