"""
JWT Authentication Helper for Supabase

Resolves the calling user from the Supabase access token sent by the
storefront (Authorization: Bearer <jwt>).
"""
import jwt
import os
from typing import Optional
from fastapi import Header, HTTPException
import logging

logger = logging.getLogger("uvicorn.error")

DEFAULT_AUDIENCE = "authenticated"


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        logger.warning("[Auth] No authorization header provided")
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not token.strip():
        logger.warning("[Auth] Invalid authorization format (missing 'Bearer')")
        return None
    return token.strip()


def decode_access_token(token: str, secret: Optional[str], audience: str) -> dict:
    """
    Decode a Supabase access token

    With a secret the HS256 signature, expiry and audience are checked.
    Without one the claims are read unverified (local development only).

    Raises:
        jwt.InvalidTokenError: signature, expiry or audience mismatch
    """
    if secret:
        return jwt.decode(token, secret, algorithms=["HS256"], audience=audience)

    logger.warning("[Auth] Token decoded without verification (SUPABASE_JWT_SECRET not set)")
    return jwt.decode(token, options={"verify_signature": False, "verify_aud": False})


def extract_user_id_from_token(
    authorization: Optional[str] = None,
    secret: Optional[str] = None,
    audience: Optional[str] = None
) -> Optional[str]:
    """
    Extract user_id (the ``sub`` claim) from an Authorization header

    Args:
        authorization: Authorization header value (Bearer <token>)
        secret: JWT secret (defaults to SUPABASE_JWT_SECRET)
        audience: Expected audience (defaults to SUPABASE_JWT_AUDIENCE or "authenticated")

    Returns:
        str or None: User ID, or None if not authenticated
    """
    token = _bearer_token(authorization)
    if token is None:
        return None

    try:
        claims = decode_access_token(
            token,
            secret or os.getenv("SUPABASE_JWT_SECRET"),
            audience or os.getenv("SUPABASE_JWT_AUDIENCE", DEFAULT_AUDIENCE),
        )
    except jwt.ExpiredSignatureError:
        logger.error("[Auth] Token has expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.error(f"[Auth] Invalid token: {e}")
        return None

    user_id = claims.get("sub")
    if not user_id:
        logger.warning("[Auth] No 'sub' field in JWT payload")
        return None
    return user_id


async def require_auth(authorization: Optional[str] = Header(None)) -> str:
    """
    FastAPI dependency that requires authentication

    Usage:
        @router.post("/tasks")
        async def endpoint(user_id: str = Depends(require_auth)):
            ...

    Raises:
        HTTPException: 401 if not authenticated
    """
    user_id = extract_user_id_from_token(authorization)
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id
