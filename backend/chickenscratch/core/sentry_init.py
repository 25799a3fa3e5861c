from typing import Any

from chickenscratch.core.config import SentryConfig

_SENSITIVE_KEYS = {
    "password",
    "access_token",
    "refresh_token",
    "token",
    "jwt",
    "authorization",
    "cookie",
    "set-cookie",
    "cron_secret",
    "resend_api_key",
    "smtp_password",
    "service_role_key",
}


def _scrub(value: Any) -> Any:
    """
    递归去除敏感字段（密钥、token、作者邮箱以外的凭据）。
    """
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if str(k).strip().lower() in _SENSITIVE_KEYS:
                out[str(k)] = "[Filtered]"
                continue
            out[str(k)] = _scrub(v)
        return out

    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]

    return value


def _before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    # 中文注释: 不上传请求体（稿件内容/评论），只保留诊断所需的路径与状态。
    request = event.get("request")
    if isinstance(request, dict):
        headers = request.get("headers")
        if isinstance(headers, dict):
            request["headers"] = {k: v for k, v in headers.items() if str(k).strip().lower() not in _SENSITIVE_KEYS}
        for key in ("cookies", "data", "body"):
            if key in request:
                request[key] = "[Filtered]"
        event["request"] = request

    for section in ("extra", "contexts"):
        obj = event.get(section)
        if isinstance(obj, dict):
            event[section] = _scrub(obj)

    return event


def init_sentry() -> bool:
    """
    初始化 Sentry（可选）。

    零崩溃原则：未配置 DSN / 显式禁用时直接返回 False；初始化异常由调用方吞掉并记录。
    """
    cfg = SentryConfig.from_env()
    if not cfg.enabled or not cfg.dsn:
        return False

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=cfg.dsn,
        environment=cfg.environment,
        traces_sample_rate=cfg.traces_sample_rate,
        integrations=[FastApiIntegration()],
        send_default_pii=False,
        before_send=_before_send,
        max_request_body_size="never",
    )
    return True
