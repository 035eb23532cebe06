from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base

DISCOUNT_PERCENT = "PERCENT"
DISCOUNT_FIXED = "FIXED"
DISCOUNT_TYPES = (DISCOUNT_PERCENT, DISCOUNT_FIXED)


class Voucher(Base):
    __tablename__ = "vouchers"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), unique=True, index=True, nullable=False)
    discount_type = Column(String(16), nullable=False, default=DISCOUNT_FIXED)
    discount_value = Column(Float, nullable=False, default=0.0)
    max_discount_amount = Column(Float, nullable=True)  # caps PERCENT discounts
    min_order_value = Column(Float, nullable=False, default=0.0)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    usage_limit = Column(Integer, nullable=True)  # None or 0 = unlimited
    used_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class VoucherUsage(Base):
    __tablename__ = "voucher_usages"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    voucher_id = Column(Integer, ForeignKey("vouchers.id", ondelete="CASCADE"), nullable=False)
    used_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (UniqueConstraint('user_id', 'voucher_id', name='uq_voucher_user_usage'),)


class UserVoucher(Base):
    """A voucher granted to a user's wallet, e.g. through a gift code."""
    __tablename__ = "user_vouchers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    voucher_id = Column(Integer, ForeignKey("vouchers.id", ondelete="CASCADE"), nullable=False)
    is_used = Column(Boolean, nullable=False, default=False)
    granted_at = Column(DateTime, default=datetime.utcnow)

    voucher = relationship("Voucher")

    __table_args__ = (UniqueConstraint('user_id', 'voucher_id', name='uq_user_voucher'),)
