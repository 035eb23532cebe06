import os

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.database import get_db, safe_rollback
from app.models.user import User
from app.dependencies import get_verified_email, get_current_user
from app.services.normalize import serialize_user, safe_float, safe_int

router = APIRouter()


class ProfileRequest(BaseModel):
    full_name: str = Field(alias="fullName")
    phone: str | None = None
    avatar_url: str | None = Field(default=None, alias="avatarUrl")

    model_config = ConfigDict(populate_by_name=True)


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user)):
    return serialize_user(user)


@router.post("/profile")
def save_profile(data: ProfileRequest, email: str = Depends(get_verified_email), db: Session = Depends(get_db)):
    """
    Create the account on first call, update it afterwards.
    Email is extracted from the verified Google token, never from the body.
    """
    full_name = data.full_name.strip()
    if not full_name:
        raise HTTPException(status_code=400, detail="Full name is required")

    user = db.query(User).filter(User.email == email).first()

    if user:
        # update existing
        user.full_name = full_name
        user.phone = data.phone.strip() if data.phone else None
        if data.avatar_url:
            user.avatar_url = data.avatar_url
    else:
        # new reader starts at level 1 with the signup bonus
        user = User(
            email=email,
            full_name=full_name,
            phone=data.phone.strip() if data.phone else None,
            avatar_url=data.avatar_url,
            level=1,
            exp=0.0,
            coin_balance=int(os.getenv("NEW_USER_COINS", "0")),
            consecutive_login_days=0,
            last_daily_login=None
        )
        db.add(user)

    try:
        db.commit()
    except Exception as exc:
        safe_rollback(db)
        raise HTTPException(status_code=500, detail="Failed to save profile") from exc

    db.refresh(user)

    return {
        "message": "Profile saved successfully",
        "user": serialize_user(user)
    }


@router.get("/users/top")
def get_top_users(limit: int = 10, db: Session = Depends(get_db)):
    """Leaderboard ordered by level, then EXP inside the level."""
    safe_limit = max(1, min(limit, 100))

    users = db.query(User).order_by(User.level.desc(), User.exp.desc()).limit(safe_limit).all()

    return [
        {
            "id": str(u.id),
            "fullName": u.full_name or "Anonymous reader",
            "level": safe_int(u.level, 1),
            "avatarUrl": u.avatar_url or "https://via.placeholder.com/45",
            "score": safe_int(u.level, 1) * 100 + safe_float(u.exp),
        }
        for u in users
    ]
