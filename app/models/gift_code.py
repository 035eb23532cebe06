from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
from app.models.voucher import Voucher


class GiftCode(Base):
    __tablename__ = "gift_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), unique=True, index=True, nullable=False)  # e.g., "TET2025"
    coin_reward = Column(Integer, nullable=False, default=0)
    exp_reward = Column(Integer, nullable=False, default=0)
    voucher_id = Column(Integer, ForeignKey("vouchers.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    usage_limit = Column(Integer, nullable=False, default=1)  # 0 = unlimited
    used_count = Column(Integer, nullable=False, default=0)
    expiry_date = Column(DateTime, nullable=True)  # None = never expires
    created_at = Column(DateTime, default=datetime.utcnow)

    voucher = relationship(Voucher)
    usages = relationship("GiftCodeUsage", back_populates="gift_code", cascade="all, delete-orphan")


class GiftCodeUsage(Base):
    __tablename__ = "gift_code_usages"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    gift_code_id = Column(Integer, ForeignKey("gift_codes.id", ondelete="CASCADE"), nullable=False)
    redeemed_at = Column(DateTime, default=datetime.utcnow)

    gift_code = relationship("GiftCode", back_populates="usages")

    # One redemption per user per code, enforced by the database
    __table_args__ = (UniqueConstraint('user_id', 'gift_code_id', name='uq_gift_code_user_usage'),)
