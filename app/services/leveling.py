"""
Leveling engine: turns recharges and reading progress into EXP and levels.

Every level is worth EXP_PER_LEVEL points. The EXP earned per unit halves
with each level (rate at level L = base * 0.5 ** (L - 1)), so progress slows
down geometrically the higher a reader climbs.
"""
import logging
import math

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.database import safe_rollback
from app.models.user import User
from app.services.normalize import safe_float, safe_int

logger = logging.getLogger(__name__)

BASE_EXP_PER_PAGE = 0.05
BASE_EXP_PER_COIN = 0.2
EXP_RATE_REDUCTION_FACTOR = 0.5
MIN_EXP_PER_COIN = 1e-9  # below this a coin is worth nothing
EXP_PER_LEVEL = 100.0

SOURCE_RECHARGE = "recharge"
SOURCE_READING = "reading"
EXP_SOURCES = (SOURCE_RECHARGE, SOURCE_READING)


def rate_modifier(level: int) -> float:
    return EXP_RATE_REDUCTION_FACTOR ** (level - 1)


def roll_over(level: int, exp: float) -> tuple[int, float]:
    """Convert every full EXP_PER_LEVEL of exp into a level."""
    if exp >= EXP_PER_LEVEL:
        levels, exp = divmod(exp, EXP_PER_LEVEL)
        level += int(levels)
    return level, exp


def clamp_exp(exp: float) -> float:
    return min(EXP_PER_LEVEL, max(0.0, exp))


def apply_recharge(level: int, exp: float, coins: float) -> tuple[int, float]:
    """
    Spend a pool of recharged coins on EXP, one level at a time.

    Each level is bought at that level's rate; whatever is left after the last
    affordable level-up is added as partial EXP. Once the per-coin rate decays
    to MIN_EXP_PER_COIN the remaining coins are dropped.
    """
    remaining = coins
    while remaining > 0:
        exp_per_coin = BASE_EXP_PER_COIN * rate_modifier(level)
        if exp_per_coin <= MIN_EXP_PER_COIN:
            break

        exp_needed = EXP_PER_LEVEL - exp
        if exp_needed < 1e-9:
            level += 1
            exp = 0.0
            continue

        coins_needed = exp_needed / exp_per_coin
        if remaining >= coins_needed:
            remaining -= coins_needed
            level += 1
            exp = 0.0
        else:
            exp += remaining * exp_per_coin
            remaining = 0

    return roll_over(level, exp)


def apply_reading(level: int, exp: float, pages: float) -> tuple[int, float]:
    """Single pass: the whole gain is priced at the starting level's rate."""
    gain = BASE_EXP_PER_PAGE * pages * rate_modifier(level)
    return roll_over(level, exp + gain)


def compute_progress(level: int, exp: float, amount: float, source: str) -> tuple[int, float]:
    if amount > 0:
        if source == SOURCE_RECHARGE:
            level, exp = apply_recharge(level, exp, amount)
        elif source == SOURCE_READING:
            level, exp = apply_reading(level, exp, amount)
    return level, clamp_exp(exp)


def add_exp(db: Session, user_id: int, amount: float, source: str, coin_increase: int = 0) -> dict:
    """
    Apply a gain event to a user and persist (level, exp, coin balance).

    `coin_increase` goes onto the balance as-is; the `amount` spent on EXP is
    never deducted from the balance.
    """
    if not math.isfinite(amount):
        raise HTTPException(status_code=400, detail="Amount must be a finite number")
    if amount < 0 or coin_increase < 0:
        raise HTTPException(status_code=400, detail="Amount and coin increase must be non-negative")
    if source not in EXP_SOURCES:
        raise HTTPException(status_code=400, detail=f"Unknown EXP source '{source}'")

    user = db.query(User).filter(User.id == user_id).with_for_update().first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    initial_level = max(1, safe_int(user.level, 1))
    level, exp = compute_progress(initial_level, safe_float(user.exp), amount, source)
    coin_balance = safe_int(user.coin_balance) + coin_increase

    user.level = level
    user.exp = exp
    user.coin_balance = coin_balance

    try:
        db.commit()
    except Exception as exc:
        safe_rollback(db)
        logger.exception("Failed to persist EXP for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to add EXP") from exc

    level_up = level > initial_level
    if level_up:
        logger.info("User %s leveled up %s -> %s via %s", user_id, initial_level, level, source)

    return {
        "level": level,
        "exp": exp,
        "coinBalance": coin_balance,
        "levelUpOccurred": level_up,
    }
