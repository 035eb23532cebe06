from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user, get_optional_user, require_admin
from app.models.gift_code import GiftCode
from app.models.user import User
from app.models.voucher import Voucher, VoucherUsage, UserVoucher, DISCOUNT_PERCENT, DISCOUNT_TYPES
from app.services.normalize import normalize_code, parse_iso, safe_int
from app.services.vouchers import (
    apply_voucher,
    find_voucher,
    list_available_vouchers,
    list_user_vouchers,
    serialize_voucher,
    validate_voucher,
)

router = APIRouter(prefix="/api", tags=["vouchers"])


class VoucherCheckRequest(BaseModel):
    code: str
    total_amount: float = Field(alias="totalAmount")

    model_config = ConfigDict(populate_by_name=True)


class VoucherCreateRequest(BaseModel):
    code: str
    discount_type: str = Field(alias="discountType")  # "PERCENT" | "FIXED"
    discount_value: float = Field(alias="discountValue")
    max_discount_amount: float | None = Field(default=None, alias="maxDiscountAmount")
    min_order_value: float = Field(default=0, alias="minOrderValue")
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    usage_limit: int | None = Field(default=None, alias="usageLimit")  # None = unlimited
    is_active: bool = Field(default=True, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class VoucherUpdateRequest(BaseModel):
    code: str | None = None
    discount_type: str | None = Field(default=None, alias="discountType")
    discount_value: float | None = Field(default=None, alias="discountValue")
    max_discount_amount: float | None = Field(default=None, alias="maxDiscountAmount")
    min_order_value: float | None = Field(default=None, alias="minOrderValue")
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    usage_limit: int | None = Field(default=None, alias="usageLimit")
    is_active: bool | None = Field(default=None, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


def _check_discount(discount_type: str, discount_value: float):
    if discount_type not in DISCOUNT_TYPES:
        raise HTTPException(status_code=400, detail="discountType must be PERCENT or FIXED")
    if discount_value < 0:
        raise HTTPException(status_code=400, detail="discountValue must be non-negative")
    if discount_type == DISCOUNT_PERCENT and discount_value > 100:
        raise HTTPException(status_code=400, detail="A percent discount cannot exceed 100")


def _get_or_404(db: Session, voucher_id: int) -> Voucher:
    voucher = db.query(Voucher).filter(Voucher.id == voucher_id).first()
    if not voucher:
        raise HTTPException(status_code=404, detail="Voucher not found")
    return voucher


@router.post("/vouchers/validate")
def validate(data: VoucherCheckRequest, user: User | None = Depends(get_optional_user), db: Session = Depends(get_db)):
    """
    Check whether a voucher applies to an order of `totalAmount`.
    Login is optional; when present, vouchers the reader already used are refused.
    Nothing is recorded here.
    """
    try:
        voucher_data = validate_voucher(db, data.code, data.total_amount, user.id if user else None)
    except HTTPException as e:
        return JSONResponse(status_code=e.status_code, content={"valid": False, "message": e.detail})

    return {"valid": True, "message": "Voucher applied", "data": voucher_data}


@router.post("/vouchers/apply")
def apply(data: VoucherCheckRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Record a voucher against a completed order (called at checkout completion)."""
    return apply_voucher(db, user.id, data.code, data.total_amount)


@router.get("/vouchers")
def get_available_vouchers(db: Session = Depends(get_db)):
    return [serialize_voucher(v) for v in list_available_vouchers(db)]


@router.get("/vouchers/mine")
def get_my_vouchers(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return list_user_vouchers(db, user.id)


# --- Admin Endpoints ---

@router.get("/admin/vouchers")
def list_vouchers(admin: str = Depends(require_admin), db: Session = Depends(get_db)):
    return [serialize_voucher(v) for v in db.query(Voucher).order_by(Voucher.id.desc()).all()]


@router.post("/admin/vouchers")
def create_voucher(data: VoucherCreateRequest, admin: str = Depends(require_admin), db: Session = Depends(get_db)):
    code = normalize_code(data.code)
    if not code:
        raise HTTPException(status_code=400, detail="Voucher code is required")

    if find_voucher(db, code):
        raise HTTPException(status_code=400, detail="Voucher code already exists")

    _check_discount(data.discount_type, data.discount_value)

    voucher = Voucher(
        code=code,
        discount_type=data.discount_type,
        discount_value=data.discount_value,
        max_discount_amount=data.max_discount_amount or None,
        min_order_value=data.min_order_value or 0,
        start_date=parse_iso(data.start_date, "startDate") if data.start_date else None,
        end_date=parse_iso(data.end_date, "endDate") if data.end_date else None,
        usage_limit=data.usage_limit or None,
        is_active=data.is_active
    )
    db.add(voucher)
    db.commit()
    db.refresh(voucher)

    return {"success": True, "message": "Voucher created successfully", "voucher": serialize_voucher(voucher)}


@router.patch("/admin/vouchers/{voucher_id}")
def update_voucher(voucher_id: int, data: VoucherUpdateRequest, admin: str = Depends(require_admin), db: Session = Depends(get_db)):
    voucher = _get_or_404(db, voucher_id)

    if data.code is not None:
        code = normalize_code(data.code)
        existing = find_voucher(db, code)
        if not code or (existing and existing.id != voucher.id):
            raise HTTPException(status_code=400, detail="Voucher code already exists")
        voucher.code = code

    discount_type = data.discount_type if data.discount_type is not None else voucher.discount_type
    discount_value = data.discount_value if data.discount_value is not None else voucher.discount_value
    _check_discount(discount_type, discount_value)
    voucher.discount_type = discount_type
    voucher.discount_value = discount_value

    if data.max_discount_amount is not None:
        voucher.max_discount_amount = data.max_discount_amount or None

    if data.min_order_value is not None:
        voucher.min_order_value = data.min_order_value

    if data.start_date is not None:
        voucher.start_date = parse_iso(data.start_date, "startDate") if data.start_date else None

    if data.end_date is not None:
        voucher.end_date = parse_iso(data.end_date, "endDate") if data.end_date else None

    if data.usage_limit is not None:
        if data.usage_limit < 0:
            raise HTTPException(status_code=400, detail="usageLimit must be non-negative")
        if 0 < data.usage_limit < safe_int(voucher.used_count):
            raise HTTPException(status_code=400, detail="usageLimit cannot be lower than usedCount")
        voucher.usage_limit = data.usage_limit or None

    if data.is_active is not None:
        voucher.is_active = data.is_active

    db.commit()
    db.refresh(voucher)

    return {"success": True, "message": "Voucher updated successfully", "voucher": serialize_voucher(voucher)}


@router.delete("/admin/vouchers/{voucher_id}")
def delete_voucher(voucher_id: int, admin: str = Depends(require_admin), db: Session = Depends(get_db)):
    voucher = _get_or_404(db, voucher_id)

    # Gift codes keep working without their voucher
    db.query(GiftCode).filter(GiftCode.voucher_id == voucher.id).update({GiftCode.voucher_id: None}, synchronize_session=False)
    db.query(UserVoucher).filter(UserVoucher.voucher_id == voucher.id).delete(synchronize_session=False)
    db.query(VoucherUsage).filter(VoucherUsage.voucher_id == voucher.id).delete(synchronize_session=False)
    db.delete(voucher)
    db.commit()

    return {"success": True, "message": "Voucher deleted successfully"}
