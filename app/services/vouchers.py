import logging
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import safe_rollback
from app.models.voucher import Voucher, VoucherUsage, UserVoucher, DISCOUNT_PERCENT
from app.services.normalize import iso, normalize_code, safe_float, safe_int

logger = logging.getLogger(__name__)


def find_voucher(db: Session, code: str) -> Voucher | None:
    return db.query(Voucher).filter(Voucher.code == normalize_code(code)).first()


def is_exhausted(voucher: Voucher) -> bool:
    limit = safe_int(voucher.usage_limit)
    return limit > 0 and safe_int(voucher.used_count) >= limit


def has_used(db: Session, user_id: int, voucher_id: int) -> bool:
    return db.query(VoucherUsage).filter(
        VoucherUsage.user_id == user_id,
        VoucherUsage.voucher_id == voucher_id
    ).first() is not None


def calculate_discount(voucher: Voucher, total_amount: float) -> float:
    """PERCENT is capped by maxDiscountAmount (when set); no discount exceeds the order."""
    value = safe_float(voucher.discount_value)
    if voucher.discount_type == DISCOUNT_PERCENT:
        discount = total_amount * value / 100
        cap = safe_float(voucher.max_discount_amount)
        if cap and discount > cap:
            discount = cap
    else:
        discount = value

    return max(0.0, min(discount, total_amount))


def check_voucher(db: Session, code: str, total_amount: float, user_id: int | None = None,
                  now: datetime | None = None) -> Voucher:
    """Run every validation rule in order; raise on the first one that fails."""
    now = now or datetime.utcnow()

    voucher = find_voucher(db, code)
    if not voucher:
        raise HTTPException(status_code=404, detail="Voucher code does not exist")

    if not voucher.is_active:
        raise HTTPException(status_code=400, detail="Voucher code has been disabled")

    if voucher.start_date and voucher.start_date > now:
        raise HTTPException(status_code=400, detail="Voucher code is not active yet")

    if voucher.end_date and voucher.end_date < now:
        raise HTTPException(status_code=400, detail="Voucher code has expired")

    if is_exhausted(voucher):
        raise HTTPException(status_code=400, detail="Voucher code has no uses left")

    if user_id and has_used(db, user_id, voucher.id):
        raise HTTPException(status_code=400, detail="You have already used this voucher")

    min_order = safe_float(voucher.min_order_value)
    if total_amount < min_order:
        raise HTTPException(
            status_code=400,
            detail=f"Order total must be at least {min_order:,.0f}"
        )

    return voucher


def validate_voucher(db: Session, code: str, total_amount: float, user_id: int | None = None,
                     now: datetime | None = None) -> dict:
    """Read-only: nothing is recorded here."""
    voucher = check_voucher(db, code, total_amount, user_id, now)
    data = serialize_voucher(voucher)
    data["calculatedDiscount"] = calculate_discount(voucher, total_amount)
    return data


def _claim_use(db: Session, voucher_id: int) -> bool:
    updated = db.query(Voucher).filter(
        Voucher.id == voucher_id,
        or_(
            Voucher.usage_limit.is_(None),
            Voucher.usage_limit == 0,
            Voucher.used_count < Voucher.usage_limit
        )
    ).update({Voucher.used_count: Voucher.used_count + 1}, synchronize_session=False)
    return updated == 1


def apply_voucher(db: Session, user_id: int, code: str, total_amount: float,
                  now: datetime | None = None) -> dict:
    """
    Consume a voucher for a completed order.
    Same checks as validate_voucher, then the usage is recorded atomically.
    """
    voucher = check_voucher(db, code, total_amount, user_id, now)
    voucher_id = voucher.id
    discount = calculate_discount(voucher, total_amount)

    try:
        db.add(VoucherUsage(user_id=user_id, voucher_id=voucher_id))
        db.flush()

        if not _claim_use(db, voucher_id):
            raise HTTPException(status_code=400, detail="Voucher code has no uses left")

        db.query(UserVoucher).filter(
            UserVoucher.user_id == user_id,
            UserVoucher.voucher_id == voucher_id
        ).update({UserVoucher.is_used: True}, synchronize_session=False)

        db.commit()
    except HTTPException:
        safe_rollback(db)
        raise
    except IntegrityError as exc:
        safe_rollback(db)
        raise HTTPException(status_code=400, detail="You have already used this voucher") from exc
    except Exception as exc:
        safe_rollback(db)
        logger.exception("Voucher %s consumption failed for user %s", voucher_id, user_id)
        raise HTTPException(status_code=500, detail="Failed to apply voucher") from exc

    logger.info("User %s consumed voucher %s (discount %.2f)", user_id, voucher_id, discount)

    return {
        "success": True,
        "message": "Voucher applied",
        "calculatedDiscount": discount,
        "finalAmount": total_amount - discount,
    }


def list_available_vouchers(db: Session, now: datetime | None = None) -> list[Voucher]:
    now = now or datetime.utcnow()
    return db.query(Voucher).filter(
        Voucher.is_active == True,
        or_(
            Voucher.usage_limit.is_(None),
            Voucher.usage_limit == 0,
            Voucher.used_count < Voucher.usage_limit
        ),
        or_(Voucher.start_date.is_(None), Voucher.start_date <= now),
        or_(Voucher.end_date.is_(None), Voucher.end_date > now)
    ).order_by(Voucher.id.desc()).all()


def list_user_vouchers(db: Session, user_id: int) -> list[dict]:
    owned = db.query(UserVoucher).filter(UserVoucher.user_id == user_id).order_by(UserVoucher.granted_at.desc()).all()
    result = []
    for entry in owned:
        data = serialize_voucher(entry.voucher)
        data["isUsed"] = bool(entry.is_used)
        data["grantedAt"] = iso(entry.granted_at)
        result.append(data)
    return result


def serialize_voucher(voucher: Voucher) -> dict:
    return {
        "id": voucher.id,
        "code": voucher.code,
        "discountType": voucher.discount_type,
        "discountValue": safe_float(voucher.discount_value),
        "maxDiscountAmount": voucher.max_discount_amount,
        "minOrderValue": safe_float(voucher.min_order_value),
        "startDate": iso(voucher.start_date),
        "endDate": iso(voucher.end_date),
        "usageLimit": voucher.usage_limit,
        "usedCount": safe_int(voucher.used_count),
        "isActive": bool(voucher.is_active),
        "createdAt": iso(voucher.created_at),
    }
