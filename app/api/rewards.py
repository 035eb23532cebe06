from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.services.leveling import add_exp
from app.services.rewards import DAILY_REWARDS, claim_daily_reward

router = APIRouter(prefix="/api", tags=["rewards"])


class AddExpRequest(BaseModel):
    amount: float
    source: str  # "recharge" | "reading"
    coin_increase: int = Field(default=0, alias="coinIncrease")

    model_config = ConfigDict(populate_by_name=True)


@router.post("/add-exp")
def add_exp_endpoint(data: AddExpRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Convert a recharge or reading progress into EXP.
    🔒 The user comes from the verified token, never from the request body.
    """
    return add_exp(db, user.id, data.amount, data.source, data.coin_increase)


@router.post("/claim-reward")
def claim_reward(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return claim_daily_reward(db, user.id)


@router.get("/daily-rewards")
def get_daily_rewards():
    return DAILY_REWARDS
