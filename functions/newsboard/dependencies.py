"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException

from newsboard.auth import (
    AuthClient,
    AuthError,
    AuthUser,
    GateKeeper,
    GateLocked,
    InMemoryAuthClient,
    JwtAuthClient,
)
from newsboard.config import get_settings
from newsboard.db import DbClient, InMemoryDbClient, PostgresDbClient
from newsboard.storage import InMemoryStorageClient, S3StorageClient, StorageClient

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_auth_client: AuthClient | None = None
_gate_keeper: GateKeeper | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.media_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.media_bucket,
            region=settings.media_region or "",
            endpoint=settings.media_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.media_public_base_url,
        )
    return _storage_client


def get_auth_client() -> AuthClient:
    global _auth_client
    if _auth_client:
        return _auth_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.auth_jwt_secret:
        _auth_client = InMemoryAuthClient()
    else:
        _auth_client = JwtAuthClient(
            secret=settings.auth_jwt_secret,
            audience=settings.auth_jwt_audience or None,
        )
    return _auth_client


def get_gate_keeper() -> GateKeeper:
    global _gate_keeper
    if _gate_keeper:
        return _gate_keeper

    settings = get_settings()
    # Without a configured secret, gate tokens only survive this process.
    _gate_keeper = GateKeeper(
        password=settings.gate_password,
        secret=settings.gate_secret or secrets.token_urlsafe(32),
        ttl_minutes=settings.gate_token_ttl_minutes,
    )
    return _gate_keeper


def require_gate(
    x_gate_token: Optional[str] = Header(None),
    gate: GateKeeper = Depends(get_gate_keeper),
) -> None:
    try:
        gate.check(x_gate_token)
    except GateLocked as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_optional_user(
    authorization: Optional[str] = Header(None),
    auth: AuthClient = Depends(get_auth_client),
) -> Optional[AuthUser]:
    """Resolve the caller if a bearer token is present; anonymous otherwise."""
    token = _bearer_token(authorization)
    if token is None:
        return None
    try:
        return auth.verify_token(token)
    except AuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def get_current_user(user: Optional[AuthUser] = Depends(get_optional_user)) -> AuthUser:
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
