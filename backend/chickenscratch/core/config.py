import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int) -> int:
    raw = (os.environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    raw = (os.environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class AppConfig:
    """
    Application environment config.
    """

    env: str  # 'development', 'staging', 'production'
    supabase_url: str
    supabase_key: str
    site_url: str

    @staticmethod
    def from_env() -> "AppConfig":
        env = (os.environ.get("APP_ENV") or "development").strip().lower()
        supabase_url = (os.environ.get("SUPABASE_URL") or "").strip()
        supabase_key = (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
        site_url = (os.environ.get("SITE_URL") or "http://localhost:3000").strip().rstrip("/")

        return AppConfig(
            env=env,
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            site_url=site_url,
        )


# Global Config Instance
app_config = AppConfig.from_env()


@dataclass(frozen=True)
class SMTPConfig:
    """
    SMTP 配置（从环境变量读取）

    中文注释:
    1) 该配置只存在于后端进程内，严禁泄露到前端。
    2) 允许在本地/测试环境缺省（此时邮件发送逻辑会降级为“只记录日志”）。
    """

    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    from_email: str
    use_starttls: bool

    @staticmethod
    def from_env() -> Optional["SMTPConfig"]:
        host = (os.environ.get("SMTP_HOST") or "").strip()
        if not host:
            return None

        user = (os.environ.get("SMTP_USER") or "").strip() or None
        password = (os.environ.get("SMTP_PASSWORD") or "").strip() or None
        from_email = (
            os.environ.get("SMTP_FROM_EMAIL") or user or "notifications@chickenscratch.me"
        ).strip()

        return SMTPConfig(
            host=host,
            port=_env_int("SMTP_PORT", 587),
            user=user,
            password=password,
            from_email=from_email,
            use_starttls=_env_bool("SMTP_USE_STARTTLS", True),
        )


@dataclass(frozen=True)
class ResendConfig:
    """
    Resend API configuration (production email provider).
    """

    api_key: str
    sender: str

    @staticmethod
    def from_env() -> Optional["ResendConfig"]:
        api_key = (os.environ.get("RESEND_API_KEY") or "").strip()
        if not api_key:
            return None

        sender = (
            os.environ.get("EMAIL_SENDER") or "Chicken Scratch <notifications@chickenscratch.me>"
        ).strip()

        return ResendConfig(api_key=api_key, sender=sender)


@dataclass(frozen=True)
class WorkflowConfig:
    """
    Committee workflow + reminder settings.

    中文注释:
    - reminder_cooldown_days 同时作为“停滞判定阈值”和“提醒去重窗口”，两者共用一个常量。
    - conversion_url 为空时，协调员第二次 review 会返回 503（文档转换服务不可用）。
    """

    reminder_cooldown_days: int
    conversion_url: Optional[str]
    conversion_timeout_sec: float
    notification_timeout_sec: float

    @staticmethod
    def from_env() -> "WorkflowConfig":
        cooldown = _env_int("REMINDER_COOLDOWN_DAYS", 3)
        if cooldown <= 0:
            cooldown = 3

        return WorkflowConfig(
            reminder_cooldown_days=cooldown,
            conversion_url=(os.environ.get("DOC_CONVERSION_URL") or "").strip() or None,
            conversion_timeout_sec=_env_float("DOC_CONVERSION_TIMEOUT_SEC", 30.0),
            notification_timeout_sec=_env_float("EMAIL_TIMEOUT_SEC", 10.0),
        )


@dataclass(frozen=True)
class SentryConfig:
    dsn: Optional[str]
    enabled: bool
    environment: str
    traces_sample_rate: float

    @staticmethod
    def from_env() -> "SentryConfig":
        dsn = (os.environ.get("SENTRY_DSN") or "").strip() or None
        return SentryConfig(
            dsn=dsn,
            enabled=_env_bool("SENTRY_ENABLED", bool(dsn)),
            environment=(os.environ.get("SENTRY_ENVIRONMENT") or app_config.env).strip(),
            traces_sample_rate=_env_float("SENTRY_TRACES_SAMPLE_RATE", 0.0),
        )


def get_cron_secret() -> Optional[str]:
    """
    Cron 接口鉴权 Secret

    中文注释:
    - 仅用于 `/api/v1/internal/cron/*`，由外部调度器以 Bearer 方式携带。
    - 未配置时直接拒绝所有调用，避免误开放内部接口。
    """

    raw = os.environ.get("CRON_SECRET")
    return raw.strip() if raw and raw.strip() else None
