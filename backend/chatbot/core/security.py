from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from chatbot.config import get_settings
from chatbot.db import postgres

bearer_scheme = HTTPBearer()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode(), hashed.encode())


def create_access_token(data: dict[str, Any]) -> str:
    settings = get_settings()
    payload = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(days=settings.jwt_expire_days)
    payload["exp"] = expire
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> dict:
    """Resolve the bearer token to a user row, or fail with 401."""
    payload = decode_token(credentials.credentials)
    username: str | None = payload.get("sub")
    if not username:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    user = await postgres.fetch_one(
        "SELECT id, username, created_at FROM users WHERE username = $1",
        username,
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return dict(user)


async def authenticate_user(username: str, password: str) -> dict | None:
    """Return the user row when the password matches, else None."""
    user = await postgres.fetch_one(
        "SELECT id, username, hashed_password, created_at FROM users WHERE username = $1",
        username,
    )
    if not user or not verify_password(password, user["hashed_password"]):
        return None
    return {"id": user["id"], "username": user["username"], "created_at": user["created_at"]}


async def register_user(username: str, password: str) -> dict | None:
    """Create a user. Returns None when the username is already taken."""
    row = await postgres.fetch_one(
        """INSERT INTO users (username, hashed_password) VALUES ($1, $2)
           ON CONFLICT (username) DO NOTHING
           RETURNING id, username, created_at""",
        username,
        hash_password(password),
    )
    return dict(row) if row else None
