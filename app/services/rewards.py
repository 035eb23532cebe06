import logging
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.database import safe_rollback
from app.models.user import User
from app.services.normalize import safe_int

logger = logging.getLogger(__name__)

REWARD_TYPE_COIN = "Xu"

# 7-day cycle, indexed by (streak - 1) % 7
DAILY_REWARDS = [
    {"day": 1, "type": REWARD_TYPE_COIN, "amount": 30},
    {"day": 2, "type": REWARD_TYPE_COIN, "amount": 50},
    {"day": 3, "type": REWARD_TYPE_COIN, "amount": 60},
    {"day": 4, "type": REWARD_TYPE_COIN, "amount": 70},
    {"day": 5, "type": REWARD_TYPE_COIN, "amount": 100},
    {"day": 6, "type": REWARD_TYPE_COIN, "amount": 120},
    {"day": 7, "type": REWARD_TYPE_COIN, "amount": 200},
]

ALREADY_CLAIMED_MESSAGE = "You have already claimed today's reward!"
STREAK_RESET_MESSAGE = "Your login streak was broken! Starting again from Day 1."


def days_between(last: datetime, now: datetime) -> int:
    """Calendar-day difference; the time of day is ignored."""
    return (now.date() - last.date()).days


def next_streak(last_login: datetime | None, streak: int, now: datetime) -> tuple[int, bool]:
    """
    Returns (next streak day, streak was reset).
    Raises 400 when the reward was already claimed today.
    """
    if last_login is None:
        return 1, False

    diff_days = days_between(last_login, now)
    if diff_days <= 0:
        raise HTTPException(status_code=400, detail=ALREADY_CLAIMED_MESSAGE)
    if diff_days == 1:
        return streak + 1, False
    return 1, True


def reward_for_day(streak_day: int) -> dict:
    return DAILY_REWARDS[(streak_day - 1) % len(DAILY_REWARDS)]


def claim_daily_reward(db: Session, user_id: int, now: datetime | None = None) -> dict:
    now = now or datetime.now()

    user = db.query(User).filter(User.id == user_id).with_for_update().first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    next_day, streak_reset = next_streak(
        user.last_daily_login, safe_int(user.consecutive_login_days), now
    )

    reward = reward_for_day(next_day)
    if reward["type"] != REWARD_TYPE_COIN:
        logger.error("Invalid reward data for day %s: %s", next_day, reward)
        raise HTTPException(status_code=500, detail="Invalid reward configuration")

    reward_coins = reward["amount"]
    new_balance = safe_int(user.coin_balance) + reward_coins

    user.coin_balance = new_balance
    user.last_daily_login = now
    user.consecutive_login_days = next_day

    try:
        db.commit()
    except Exception as exc:
        safe_rollback(db)
        logger.exception("Failed to store daily reward for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to claim reward") from exc

    logger.info("User %s claimed day %s reward (%s coins)", user_id, next_day, reward_coins)

    if streak_reset:
        message = STREAK_RESET_MESSAGE
    else:
        message = f"Received {reward_coins} coins for login Day {next_day}!"

    return {
        "newBalance": new_balance,
        "nextLoginDays": next_day,
        "rewardAmount": reward_coins,
        "notificationMessage": message,
    }
