from datetime import datetime

from fastapi import HTTPException


def safe_int(value, default: int = 0) -> int:
    """Coerce a DB/driver value to int, falling back to `default`."""
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def safe_float(value, default: float = 0.0) -> float:
    try:
        result = float(value) if value is not None else default
    except (TypeError, ValueError):
        return default
    # NaN never equals itself
    return default if result != result else result


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_user(user) -> dict:
    """
    Convert a User row into the JSON shape the client expects.
    Numeric columns are coerced so a bad row never leaks None/NaN to the UI.
    """
    level = safe_int(user.level, 1)
    return {
        "id": str(user.id),
        "email": user.email,
        "fullName": user.full_name,
        "phone": user.phone,
        "avatarUrl": user.avatar_url or "https://via.placeholder.com/150",
        "level": level if level >= 1 else 1,
        "exp": safe_float(user.exp),
        "coinBalance": safe_int(user.coin_balance),
        "consecutiveLoginDays": safe_int(user.consecutive_login_days),
        "lastDailyLogin": iso(user.last_daily_login),
    }


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def parse_iso(value: str, field: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field} format. Use ISO format: YYYY-MM-DDTHH:MM:SS")
