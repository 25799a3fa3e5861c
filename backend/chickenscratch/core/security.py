from __future__ import annotations

import hmac

from fastapi import Header, HTTPException

from chickenscratch.core.config import get_cron_secret


async def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """
    内部 Cron 接口鉴权依赖（Authorization: Bearer <CRON_SECRET>）。

    中文注释:
    - 该 Secret 不属于用户体系（不是 JWT），仅用于外部调度器触发提醒扫描。
    - 若未配置 CRON_SECRET，则直接拒绝，避免误开放内部接口。
    """

    expected = get_cron_secret()
    if not expected:
        raise HTTPException(status_code=401, detail="Cron secret not configured")

    raw = (authorization or "").strip()
    if not raw.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    token = raw[7:].strip()
    if not hmac.compare_digest(token, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")
