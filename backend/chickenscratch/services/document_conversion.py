from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from chickenscratch.core.config import WorkflowConfig

logger = logging.getLogger("chickenscratch.conversion")

GOOGLE_DOC_URL = "https://docs.google.com/document/d/{doc_id}/edit"


class ConversionResult(BaseModel):
    success: bool
    google_doc_url: Optional[str] = None
    error: Optional[str] = None
    status: int = 200


class DocumentConverter:
    """
    文档转换协作方（外部 webhook，把稿件文件转成可协作编辑的 Google Doc）。

    中文注释:
    - 只在协调员第二次 review 时调用；本类不写 submissions / audit_log。
    - 超时由 httpx 控制，不做自动重试（下一次点击即重试）。
    """

    def __init__(
        self,
        *,
        webhook_url: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        cfg = WorkflowConfig.from_env()
        self.webhook_url = webhook_url if webhook_url is not None else cfg.conversion_url
        self.timeout_sec = timeout_sec or cfg.conversion_timeout_sec
        self._transport = transport

    def convert(self, submission: dict[str, Any], *, actor_id: str, author_name: str) -> ConversionResult:
        submission_id = str(submission.get("id") or "")
        file_url = str(submission.get("file_url") or "").strip()
        if not file_url:
            logger.warning(f"[Conversion] no file attached: submission={submission_id}")
            return ConversionResult(success=False, error="No file attached to submission", status=400)

        if not self.webhook_url:
            logger.error("[Conversion] DOC_CONVERSION_URL not configured")
            return ConversionResult(success=False, error="Document conversion not configured", status=503)

        payload = {
            "submission_id": submission_id,
            "requested_by": actor_id,
            "file_url": file_url,
            "file_name": submission.get("file_name") or "untitled",
            "title": submission.get("title"),
            "author": author_name,
        }

        try:
            with httpx.Client(timeout=self.timeout_sec, transport=self._transport) as client:
                resp = client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"[Conversion] webhook request failed: submission={submission_id}: {e}")
            return ConversionResult(success=False, error=f"Conversion request failed: {e}", status=502)

        if resp.status_code >= 400:
            logger.error(f"[Conversion] webhook failed: status={resp.status_code} body={resp.text[:500]}")
            return ConversionResult(
                success=False,
                error=f"Webhook failed: {resp.reason_phrase or resp.status_code}",
                status=502,
            )

        try:
            body = resp.json()
        except ValueError:
            body = {}

        doc_url = str(body.get("google_doc_url") or "").strip() if isinstance(body, dict) else ""
        doc_id = str(body.get("google_doc_id") or "").strip() if isinstance(body, dict) else ""
        if not doc_url and doc_id:
            doc_url = GOOGLE_DOC_URL.format(doc_id=doc_id)
        if not doc_url:
            logger.error(f"[Conversion] webhook returned no document: submission={submission_id}")
            return ConversionResult(success=False, error="Webhook did not return google_doc_id", status=502)

        logger.info(f"[Conversion] converted submission={submission_id} -> {doc_url}")
        return ConversionResult(success=True, google_doc_url=doc_url)
