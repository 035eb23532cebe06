from sqlalchemy import Column, Integer, String, Float, DateTime
from datetime import datetime
from app.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)

    full_name = Column(String, nullable=False)
    phone = Column(String)
    avatar_url = Column(String)

    level = Column(Integer, nullable=False, default=1)
    exp = Column(Float, nullable=False, default=0.0)  # always in [0, 100)
    coin_balance = Column(Integer, nullable=False, default=0)

    consecutive_login_days = Column(Integer, nullable=False, default=0)
    last_daily_login = Column(DateTime, nullable=True)  # None = never claimed

    created_at = Column(DateTime, default=datetime.utcnow)
