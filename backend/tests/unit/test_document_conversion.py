import httpx
import pytest

from chickenscratch.services.document_conversion import DocumentConverter
from utils.factories import make_submission

WEBHOOK = "https://hooks.example.com/convert"


def _converter(handler) -> DocumentConverter:
    return DocumentConverter(webhook_url=WEBHOOK, timeout_sec=5, transport=httpx.MockTransport(handler))


@pytest.mark.unit
def test_convert_returns_doc_url_from_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.read()
        return httpx.Response(200, json={"google_doc_id": "abc123"})

    result = _converter(handler).convert(make_submission(), actor_id="u-1", author_name="Avery Author")

    assert result.success is True
    assert result.google_doc_url == "https://docs.google.com/document/d/abc123/edit"
    assert seen["url"] == WEBHOOK
    assert b'"requested_by":"u-1"' in seen["body"].replace(b" ", b"")


@pytest.mark.unit
def test_convert_prefers_explicit_url():
    result = _converter(lambda r: httpx.Response(200, json={"google_doc_url": "https://docs.example/d/1"})).convert(
        make_submission(), actor_id="u-1", author_name="A"
    )
    assert result.google_doc_url == "https://docs.example/d/1"


@pytest.mark.unit
def test_missing_file_is_400():
    result = _converter(lambda r: httpx.Response(200)).convert(
        make_submission(file_url=None), actor_id="u-1", author_name="A"
    )
    assert result.success is False
    assert result.status == 400


@pytest.mark.unit
def test_unconfigured_webhook_is_503():
    result = DocumentConverter(webhook_url="").convert(make_submission(), actor_id="u-1", author_name="A")
    assert result.success is False
    assert result.status == 503


@pytest.mark.unit
def test_webhook_error_status_is_502():
    result = _converter(lambda r: httpx.Response(500, text="boom")).convert(
        make_submission(), actor_id="u-1", author_name="A"
    )
    assert result.success is False
    assert result.status == 502


@pytest.mark.unit
def test_webhook_without_document_is_502():
    result = _converter(lambda r: httpx.Response(200, json={"ok": True})).convert(
        make_submission(), actor_id="u-1", author_name="A"
    )
    assert result.status == 502
    assert "google_doc_id" in result.error


@pytest.mark.unit
def test_transport_error_is_502():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    result = _converter(handler).convert(make_submission(), actor_id="u-1", author_name="A")
    assert result.success is False
    assert result.status == 502
