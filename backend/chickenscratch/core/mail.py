import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import resend
from jinja2 import Environment, FileSystemLoader, select_autoescape

from chickenscratch.core.config import ResendConfig, SMTPConfig, WorkflowConfig, app_config

logger = logging.getLogger("chickenscratch.mail")


@dataclass(frozen=True)
class EmailSendResult:
    ok: bool
    dry_run: bool = False
    provider_id: Optional[str] = None
    error: Optional[str] = None


class EmailService:
    _SENTINEL = object()

    def __init__(
        self,
        *,
        smtp_config: SMTPConfig | None | object = _SENTINEL,
        resend_config: ResendConfig | None | object = _SENTINEL,
        timeout_sec: float | None = None,
    ):
        # 中文注释:
        # - smtp_config / resend_config 支持依赖注入，方便单测与不同环境切换。
        # - 若调用方显式传 None，则视为禁用该 provider。
        # - 两者都缺省时进入 dry 模式：只记录日志、视为发送成功（无 provider 的环境是正常形态）。
        if smtp_config is self._SENTINEL:
            smtp_config = SMTPConfig.from_env()
        if resend_config is self._SENTINEL:
            resend_config = ResendConfig.from_env()

        self.smtp_config: SMTPConfig | None = smtp_config  # type: ignore[assignment]
        self.resend_config: ResendConfig | None = resend_config  # type: ignore[assignment]
        self.timeout_sec = timeout_sec or WorkflowConfig.from_env().notification_timeout_sec

        if self.resend_config:
            resend.api_key = self.resend_config.api_key

        # Path to templates: backend/chickenscratch/core/templates
        templates_dir = Path(__file__).resolve().parent / "templates"
        self._jinja = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def is_configured(self) -> bool:
        return bool(self.smtp_config or self.resend_config)

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        merged = {"site_url": app_config.site_url, **context}
        return self._jinja.get_template(template_name).render(**merged)

    def send_email(
        self,
        *,
        to: Sequence[str],
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> EmailSendResult:
        """
        发送邮件（同步）。

        中文注释:
        - 优先 Resend（生产）；未配置 Resend 但配置了 SMTP 时走 SMTP。
        - provider 失败只返回 ok=False，不抛异常（通知属于“建议性副作用”）。
        """
        recipients = [addr for addr in (to or []) if addr]
        if not recipients:
            return EmailSendResult(ok=True)

        if not self.is_configured():
            logger.info(f"[Mail] provider not configured, logging send: subject={subject!r} to={recipients}")
            return EmailSendResult(ok=True, dry_run=True)

        if self.resend_config:
            try:
                resp = resend.Emails.send(
                    {
                        "from": self.resend_config.sender,
                        "to": recipients,
                        "subject": subject,
                        "html": html_body,
                    }
                )
                provider_id = None
                if isinstance(resp, dict):
                    provider_id = resp.get("id")
                else:
                    provider_id = getattr(resp, "id", None)
                return EmailSendResult(ok=True, provider_id=provider_id)
            except Exception as e:
                logger.error(f"[Resend] send failed: {e}")
                return EmailSendResult(ok=False, error=str(e))

        assert self.smtp_config is not None
        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = self.smtp_config.from_email
            msg["To"] = ", ".join(recipients)

            if text_body:
                msg.attach(MIMEText(text_body, "plain", "utf-8"))
            msg.attach(MIMEText(html_body, "html", "utf-8"))

            with smtplib.SMTP(self.smtp_config.host, self.smtp_config.port, timeout=self.timeout_sec) as server:
                if self.smtp_config.use_starttls:
                    server.starttls()
                if self.smtp_config.user and self.smtp_config.password:
                    server.login(self.smtp_config.user, self.smtp_config.password)
                server.sendmail(self.smtp_config.from_email, recipients, msg.as_string())
            return EmailSendResult(ok=True)
        except Exception as e:
            logger.error(f"[SMTP] send failed: {e}")
            return EmailSendResult(ok=False, error=str(e))

    def send_template_email(
        self,
        *,
        to: Sequence[str],
        subject: str,
        template_name: str,
        context: Dict[str, Any],
    ) -> EmailSendResult:
        try:
            html = self.render_template(template_name, {"subject": subject, **context})
        except Exception as e:
            logger.error(f"[Mail] template render failed: {template_name}: {e}")
            return EmailSendResult(ok=False, error=f"template render failed: {e}")
        return self.send_email(to=to, subject=subject, html_body=html)


_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
