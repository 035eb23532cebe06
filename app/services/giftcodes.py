"""
🎁 Gift code redemption.

A redemption is all-or-nothing: the usage record, the usedCount bump, the
coin/EXP credit and the optional voucher grant commit together or not at all.
Two guards hold under concurrent requests:
  - gift_code_usages has a unique (user_id, gift_code_id) constraint, so a
    second insert for the same pair fails and rolls the whole thing back.
  - usedCount is bumped with a conditional UPDATE that only matches while the
    code still has uses left.
"""
import logging
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import safe_rollback
from app.models.gift_code import GiftCode, GiftCodeUsage
from app.models.user import User
from app.models.voucher import UserVoucher
from app.services.leveling import roll_over
from app.services.normalize import iso, normalize_code, safe_float, safe_int

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Gift code does not exist or has been disabled."
EXPIRED_MESSAGE = "Gift code has expired."
LIMIT_REACHED_MESSAGE = "Gift code has no uses left."
ALREADY_USED_MESSAGE = "You have already used this code."
SERVER_ERROR_MESSAGE = "Server error while processing the gift code."


def find_gift_code(db: Session, code: str) -> GiftCode | None:
    return db.query(GiftCode).filter(GiftCode.code == normalize_code(code)).first()


def is_expired(gift_code: GiftCode, now: datetime) -> bool:
    return bool(gift_code.expiry_date and gift_code.expiry_date < now)


def is_exhausted(gift_code: GiftCode) -> bool:
    limit = safe_int(gift_code.usage_limit)
    return limit > 0 and safe_int(gift_code.used_count) >= limit


def has_redeemed(db: Session, user_id: int, gift_code_id: int) -> bool:
    return db.query(GiftCodeUsage).filter(
        GiftCodeUsage.user_id == user_id,
        GiftCodeUsage.gift_code_id == gift_code_id
    ).first() is not None


def _claim_use(db: Session, gift_code_id: int) -> bool:
    """Bump usedCount only while uses remain. False means the limit was hit."""
    updated = db.query(GiftCode).filter(
        GiftCode.id == gift_code_id,
        or_(GiftCode.usage_limit == 0, GiftCode.used_count < GiftCode.usage_limit)
    ).update({GiftCode.used_count: GiftCode.used_count + 1}, synchronize_session=False)
    return updated == 1


def _credit_user(db: Session, user_id: int, coins: int, exp: int):
    user = db.query(User).filter(User.id == user_id).with_for_update().first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if coins > 0:
        user.coin_balance = safe_int(user.coin_balance) + coins
    if exp > 0:
        user.level, user.exp = roll_over(max(1, safe_int(user.level, 1)), safe_float(user.exp) + exp)


def _grant_voucher(db: Session, user_id: int, voucher_id: int):
    # A user owns a given voucher at most once
    existing = db.query(UserVoucher).filter(
        UserVoucher.user_id == user_id,
        UserVoucher.voucher_id == voucher_id
    ).first()
    if existing:
        return
    db.add(UserVoucher(user_id=user_id, voucher_id=voucher_id, is_used=False))


def apply_gift_code(db: Session, user_id: int, gift_code: GiftCode):
    """Transactional body. The caller owns commit/rollback."""
    db.add(GiftCodeUsage(user_id=user_id, gift_code_id=gift_code.id))
    db.flush()  # surfaces the unique-constraint violation here

    if not _claim_use(db, gift_code.id):
        raise HTTPException(status_code=400, detail=LIMIT_REACHED_MESSAGE)

    _credit_user(db, user_id, safe_int(gift_code.coin_reward), safe_int(gift_code.exp_reward))

    if gift_code.voucher_id:
        _grant_voucher(db, user_id, gift_code.voucher_id)


def describe_rewards(coins: int, exp: int, voucher_id: int | None) -> str:
    parts = []
    if coins > 0:
        parts.append(f"{coins} coins")
    if exp > 0:
        parts.append(f"{exp} EXP")
    if voucher_id:
        parts.append("Voucher")
    if not parts:
        return "Code redeemed successfully!"
    return f"Code redeemed successfully! You received: {', '.join(parts)}"


def redeem_gift_code(db: Session, user_id: int, code: str, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()

    # ✅ VALIDATION: every rejection happens before anything is written
    gift_code = find_gift_code(db, code)
    if not gift_code or not gift_code.is_active:
        raise HTTPException(status_code=404, detail=NOT_FOUND_MESSAGE)

    if is_expired(gift_code, now):
        raise HTTPException(status_code=400, detail=EXPIRED_MESSAGE)

    if is_exhausted(gift_code):
        raise HTTPException(status_code=400, detail=LIMIT_REACHED_MESSAGE)

    if has_redeemed(db, user_id, gift_code.id):
        raise HTTPException(status_code=400, detail=ALREADY_USED_MESSAGE)

    gift_code_id = gift_code.id
    coins = safe_int(gift_code.coin_reward)
    exp = safe_int(gift_code.exp_reward)
    voucher_id = gift_code.voucher_id

    # 🔐 ATOMIC: usage + counter + credit + voucher
    try:
        apply_gift_code(db, user_id, gift_code)
        db.commit()
    except HTTPException:
        safe_rollback(db)
        raise
    except IntegrityError as exc:
        # lost the race against a concurrent redemption of the same pair
        safe_rollback(db)
        logger.info("Duplicate redemption of gift code %s by user %s rejected", gift_code_id, user_id)
        raise HTTPException(status_code=400, detail=ALREADY_USED_MESSAGE) from exc
    except Exception as exc:
        safe_rollback(db)
        logger.exception("Gift code %s redemption failed for user %s", gift_code_id, user_id)
        raise HTTPException(status_code=500, detail=SERVER_ERROR_MESSAGE) from exc

    logger.info("User %s redeemed gift code %s", user_id, gift_code_id)

    return {
        "success": True,
        "message": describe_rewards(coins, exp, voucher_id),
        "rewards": {
            "coin": coins,
            "exp": exp,
            "voucherId": voucher_id,
        },
    }


def serialize_gift_code(gift_code: GiftCode, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    limit = safe_int(gift_code.usage_limit)
    used = safe_int(gift_code.used_count)
    return {
        "id": gift_code.id,
        "code": gift_code.code,
        "coinReward": safe_int(gift_code.coin_reward),
        "expReward": safe_int(gift_code.exp_reward),
        "voucherId": gift_code.voucher_id,
        "isActive": bool(gift_code.is_active),
        "usageLimit": limit,
        "usedCount": used,
        "remainingUses": limit - used if limit else "Unlimited",
        "usagePercentage": f"{(used / limit * 100):.1f}%" if limit else "Unlimited",
        "expiryDate": iso(gift_code.expiry_date),
        "isExpired": is_expired(gift_code, now),
        "createdAt": iso(gift_code.created_at),
    }
