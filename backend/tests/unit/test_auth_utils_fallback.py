from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from chickenscratch.core import auth_utils


def _make_jwt_like_token(header: dict, payload: dict) -> str:
    """
    构造一个符合 JWT 三段结构的字符串即可触发 jose 的 header 解析；
    signature 部分使用占位即可（不会被验证，因为我们走 fallback 分支）。
    """
    import base64
    import json

    def b64url(obj: dict) -> str:
        raw = json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("utf-8")

    sig = base64.urlsafe_b64encode(b"sig").rstrip(b"=").decode("utf-8")
    return f"{b64url(header)}.{b64url(payload)}.{sig}"


def _rs256_token() -> str:
    return _make_jwt_like_token(
        header={"alg": "RS256", "typ": "JWT"},
        payload={"sub": "user-1", "email": "u@example.com", "aud": "authenticated"},
    )


@pytest.mark.asyncio
async def test_missing_credentials_is_401():
    with pytest.raises(HTTPException) as exc:
        await auth_utils.get_current_user(None)
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_hs256_token_decoded_locally(monkeypatch):
    secret = "unit-secret"
    monkeypatch.setattr(auth_utils, "SUPABASE_JWT_SECRET", secret)
    token = jwt.encode({"sub": "user-9", "email": "nine@example.com", "aud": "authenticated"}, secret, algorithm="HS256")

    user = await auth_utils.get_current_user(HTTPAuthorizationCredentials(scheme="Bearer", credentials=token))
    assert user == {"id": "user-9", "email": "nine@example.com"}


@pytest.mark.asyncio
async def test_hs256_wrong_signature_is_401(monkeypatch):
    monkeypatch.setattr(auth_utils, "SUPABASE_JWT_SECRET", "unit-secret")
    token = jwt.encode({"sub": "user-9", "aud": "authenticated"}, "other-secret", algorithm="HS256")

    with pytest.raises(HTTPException) as exc:
        await auth_utils.get_current_user(HTTPAuthorizationCredentials(scheme="Bearer", credentials=token))
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_get_current_user_fallback_success(monkeypatch):
    fake_supabase = SimpleNamespace(
        auth=SimpleNamespace(
            get_user=lambda _token: SimpleNamespace(user=SimpleNamespace(id="user-1", email="u@example.com"))
        )
    )
    monkeypatch.setattr(auth_utils, "supabase", fake_supabase)

    creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials=_rs256_token())
    user = await auth_utils.get_current_user(creds)

    assert user["id"] == "user-1"
    assert user["email"] == "u@example.com"


@pytest.mark.asyncio
async def test_get_current_user_fallback_failure_raises_401(monkeypatch):
    def boom(_token):
        raise RuntimeError("boom")

    monkeypatch.setattr(auth_utils, "supabase", SimpleNamespace(auth=SimpleNamespace(get_user=boom)))

    creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials=_rs256_token())
    with pytest.raises(HTTPException) as exc:
        await auth_utils.get_current_user(creds)

    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_get_current_user_missing_sub_rejected(monkeypatch):
    secret = "unit-secret"
    monkeypatch.setattr(auth_utils, "SUPABASE_JWT_SECRET", secret)

    token = jwt.encode({"email": "u@example.com", "aud": "authenticated"}, secret, algorithm="HS256")
    creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)

    with pytest.raises(HTTPException) as exc:
        await auth_utils.get_current_user(creds)

    assert exc.value.status_code == 401
