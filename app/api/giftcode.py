"""
🎁 Gift code API
Readers redeem codes here; admins create, update and retire them.
"""

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from app.database import get_db, safe_rollback
from app.dependencies import get_current_user, require_admin
from app.models.gift_code import GiftCode
from app.models.user import User
from app.models.voucher import Voucher
from app.services.giftcodes import find_gift_code, redeem_gift_code, serialize_gift_code
from app.services.normalize import normalize_code, parse_iso, safe_int

router = APIRouter(prefix="/api", tags=["gift-codes"])


class RedeemRequest(BaseModel):
    code: str


class GiftCodeCreateRequest(BaseModel):
    code: str  # e.g., "TET2025"
    coin_reward: int = Field(default=0, alias="coinReward")
    exp_reward: int = Field(default=0, alias="expReward")
    voucher_id: int | None = Field(default=None, alias="voucherId")
    usage_limit: int = Field(default=1, alias="usageLimit")  # 0 = unlimited
    expiry_date: str | None = Field(default=None, alias="expiryDate")  # ISO format: "2025-12-31T23:59:59"
    is_active: bool = Field(default=True, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class GiftCodeUpdateRequest(BaseModel):
    coin_reward: int | None = Field(default=None, alias="coinReward")
    exp_reward: int | None = Field(default=None, alias="expReward")
    voucher_id: int | None = Field(default=None, alias="voucherId")
    usage_limit: int | None = Field(default=None, alias="usageLimit")
    expiry_date: str | None = Field(default=None, alias="expiryDate")
    is_active: bool | None = Field(default=None, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


def _check_non_negative(**values):
    for name, value in values.items():
        if value is not None and value < 0:
            raise HTTPException(status_code=400, detail=f"{name} must be non-negative")


def _check_voucher_exists(db: Session, voucher_id: int | None):
    if voucher_id and not db.query(Voucher).filter(Voucher.id == voucher_id).first():
        raise HTTPException(status_code=404, detail="Voucher not found")


def _get_or_404(db: Session, code: str) -> GiftCode:
    gift_code = find_gift_code(db, code)
    if not gift_code:
        raise HTTPException(status_code=404, detail="Gift code not found")
    return gift_code


@router.post("/gift-codes/redeem")
def redeem(data: RedeemRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Redeem a gift code for the authenticated reader.
    🔒 SECURITY: the user comes from the verified token, never from the body.
    """
    if not normalize_code(data.code):
        raise HTTPException(status_code=400, detail="Gift code is required")

    return redeem_gift_code(db, user.id, data.code)


@router.post("/admin/gift-codes")
def create_gift_code(data: GiftCodeCreateRequest, admin: str = Depends(require_admin), db: Session = Depends(get_db)):
    """
    🎉 Create a new gift code.

    Example:
    POST /api/admin/gift-codes
    {
        "code": "TET2025",
        "coinReward": 100,
        "expReward": 20,
        "usageLimit": 500,
        "expiryDate": "2025-02-15T23:59:59"
    }
    """
    code = normalize_code(data.code)
    if not code:
        raise HTTPException(status_code=400, detail="Gift code is required")

    _check_non_negative(coinReward=data.coin_reward, expReward=data.exp_reward, usageLimit=data.usage_limit)

    # Check if code already exists
    if find_gift_code(db, code):
        raise HTTPException(status_code=400, detail="Gift code already exists")

    _check_voucher_exists(db, data.voucher_id)

    expiry_date = parse_iso(data.expiry_date, "expiryDate") if data.expiry_date else None

    gift_code = GiftCode(
        code=code,
        coin_reward=data.coin_reward,
        exp_reward=data.exp_reward,
        voucher_id=data.voucher_id,
        usage_limit=data.usage_limit,
        expiry_date=expiry_date,
        is_active=data.is_active
    )

    db.add(gift_code)
    try:
        db.commit()
    except IntegrityError as exc:
        safe_rollback(db)
        raise HTTPException(status_code=400, detail="Gift code already exists") from exc
    db.refresh(gift_code)

    return {"message": "Gift code created successfully", "giftCode": serialize_gift_code(gift_code)}


@router.get("/admin/gift-codes")
def list_gift_codes(admin: str = Depends(require_admin), db: Session = Depends(get_db)):
    """
    📋 List all gift codes with their status and usage stats.
    """
    gift_codes = db.query(GiftCode).order_by(GiftCode.id.desc()).all()
    return [serialize_gift_code(g) for g in gift_codes]


@router.get("/admin/gift-codes/{code}")
def get_gift_code(code: str, admin: str = Depends(require_admin), db: Session = Depends(get_db)):
    return serialize_gift_code(_get_or_404(db, code))


@router.patch("/admin/gift-codes/{code}")
def update_gift_code(code: str, data: GiftCodeUpdateRequest, admin: str = Depends(require_admin), db: Session = Depends(get_db)):
    """
    ✏️ Update an existing gift code.
    """
    gift_code = _get_or_404(db, code)

    _check_non_negative(coinReward=data.coin_reward, expReward=data.exp_reward, usageLimit=data.usage_limit)

    if data.coin_reward is not None:
        gift_code.coin_reward = data.coin_reward

    if data.exp_reward is not None:
        gift_code.exp_reward = data.exp_reward

    if data.voucher_id is not None:
        _check_voucher_exists(db, data.voucher_id)
        gift_code.voucher_id = data.voucher_id or None

    if data.usage_limit is not None:
        if 0 < data.usage_limit < safe_int(gift_code.used_count):
            raise HTTPException(status_code=400, detail="usageLimit cannot be lower than usedCount")
        gift_code.usage_limit = data.usage_limit

    if data.expiry_date is not None:
        gift_code.expiry_date = parse_iso(data.expiry_date, "expiryDate") if data.expiry_date else None

    if data.is_active is not None:
        gift_code.is_active = data.is_active

    db.commit()
    db.refresh(gift_code)

    return {"message": "Gift code updated successfully", "giftCode": serialize_gift_code(gift_code)}


@router.delete("/admin/gift-codes/{code}")
def delete_gift_code(code: str, admin: str = Depends(require_admin), db: Session = Depends(get_db)):
    """
    🗑️ Delete a gift code (hard delete, usage records go with it).
    """
    gift_code = _get_or_404(db, code)
    deleted_code = gift_code.code

    db.delete(gift_code)
    db.commit()

    return {"message": f"Gift code '{deleted_code}' deleted successfully"}


@router.post("/admin/gift-codes/{code}/deactivate")
def deactivate_gift_code(code: str, admin: str = Depends(require_admin), db: Session = Depends(get_db)):
    """
    🛑 Quickly deactivate a gift code (without deleting it).
    """
    gift_code = _get_or_404(db, code)

    gift_code.is_active = False
    db.commit()
    db.refresh(gift_code)

    return {"message": f"Gift code '{gift_code.code}' deactivated", "isActive": gift_code.is_active}


@router.post("/admin/gift-codes/{code}/activate")
def activate_gift_code(code: str, admin: str = Depends(require_admin), db: Session = Depends(get_db)):
    """
    ✅ Activate a previously deactivated gift code.
    """
    gift_code = _get_or_404(db, code)

    gift_code.is_active = True
    db.commit()
    db.refresh(gift_code)

    return {"message": f"Gift code '{gift_code.code}' activated", "isActive": gift_code.is_active}
