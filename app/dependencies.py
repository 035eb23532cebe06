# app/dependencies.py
import logging
import os

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User

logger = logging.getLogger(__name__)

# Missing tokens are rejected with 401 in get_verified_email
bearer = HTTPBearer(description="Google ID Token (JWT)", auto_error=False)


def _verify_token(token: str) -> str:
    # 1. Check if Client ID is actually loaded
    client_id = os.getenv("GOOGLE_CLIENT_ID")
    if not client_id:
        logger.error("GOOGLE_CLIENT_ID is not set in environment variables")
        raise HTTPException(status_code=500, detail="Server Configuration Error")

    try:
        # 2. Verify the token
        idinfo = id_token.verify_oauth2_token(
            token, google_requests.Request(), client_id
        )
        return idinfo["email"]

    except ValueError as e:
        # 3. Log the specific error (e.g. "Token expired", "Audience mismatch")
        logger.warning("Token validation failed: %s", e)
        raise HTTPException(status_code=401, detail=f"Invalid token: {str(e)}")
    except Exception:
        logger.exception("Unexpected auth error")
        raise HTTPException(status_code=401, detail="Authentication failed")


def get_verified_email(credentials: HTTPAuthorizationCredentials | None = Depends(bearer)) -> str:
    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _verify_token(credentials.credentials)


def get_optional_email(credentials: HTTPAuthorizationCredentials | None = Depends(bearer)) -> str | None:
    """Email of the caller when a valid bearer token is sent, otherwise None."""
    if credentials is None:
        return None
    try:
        return _verify_token(credentials.credentials)
    except HTTPException as e:
        logger.info("Ignoring unusable optional bearer token: %s", e.detail)
        return None


def get_current_user(email: str = Depends(get_verified_email), db: Session = Depends(get_db)) -> User:
    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def get_optional_user(email: str | None = Depends(get_optional_email), db: Session = Depends(get_db)) -> User | None:
    if not email:
        return None
    return db.query(User).filter(User.email == email).first()


def admin_emails() -> set[str]:
    raw = os.getenv("ADMIN_EMAILS", "")
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


def require_admin(email: str = Depends(get_verified_email)) -> str:
    if email.lower() not in admin_emails():
        raise HTTPException(status_code=403, detail="Access denied")
    return email
