import logging
import os
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from chickenscratch.lib.api_client import supabase

logger = logging.getLogger("chickenscratch.auth")

# === Auth 核心配置 ===
# 中文注释:
# 1. 密钥来源于 Supabase Project Settings 中的 JWT Secret。
# 2. 身份由会话协作方签发，这里只做校验并原样信任 sub。
SUPABASE_JWT_SECRET = os.environ.get("SUPABASE_JWT_SECRET", "")
ALGORITHM = "HS256"

# auto_error=False：缺少 Authorization 时返回 401（而不是 FastAPI 默认的 403）
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    解码并验证 Supabase JWT Token，返回 {"id", "email"}。
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Unauthorized")

    token = credentials.credentials
    try:
        header = jwt.get_unverified_header(token)
        if header.get("alg") == ALGORITHM and SUPABASE_JWT_SECRET:
            payload = jwt.decode(token, SUPABASE_JWT_SECRET, algorithms=[ALGORITHM], audience="authenticated")
            user_id = payload.get("sub")
            if user_id is None:
                raise HTTPException(status_code=401, detail="Invalid token payload")
            return {"id": user_id, "email": payload.get("email")}
    except JWTError as e:
        logger.warning(f"[Auth] JWT verification failed: {e}")
        raise HTTPException(status_code=401, detail="Token invalid or expired")

    # fallback: 非 HS256（JWT Signing Keys）时通过 Supabase Auth API 校验
    try:
        response = supabase.auth.get_user(token)
        user = response.user if response else None
    except Exception as e:
        logger.warning(f"[Auth] token fallback verification failed: {e}")
        raise HTTPException(status_code=401, detail="Token invalid or expired")

    if not user:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return {"id": user.id, "email": user.email}
