from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.umbra.models import Base, User
from app.umbra.timeutil import isoformat


class BonusGrid(Base):
    """One tier of the progressive bonus grid: [min_amount, max_amount) -> bonus_percentage."""

    __tablename__ = "bonus_grid"
    __table_args__ = (Index("idx_bonus_grid_min_amount", "min_amount"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    min_amount: Mapped[float] = mapped_column(Float, nullable=False)
    max_amount: Mapped[float | None] = mapped_column(Float, nullable=True)  # NULL = unbounded
    bonus_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    fixed_bonus: Mapped[float | None] = mapped_column(Float, nullable=True)
    fixed_bonus_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def contains(self, amount: float) -> bool:
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount < self.max_amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "minAmount": self.min_amount,
            "maxAmount": self.max_amount,
            "bonusPercentage": self.bonus_percentage,
            "fixedBonus": self.fixed_bonus,
            "fixedBonusMin": self.fixed_bonus_min,
            "description": self.description,
            "isActive": self.is_active,
        }


class PlatformCommission(Base):
    __tablename__ = "platform_commission"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    commission_percent: Mapped[float] = mapped_column(Float, nullable=False, default=5.0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "commissionPercent": self.commission_percent,
            "isActive": self.is_active,
            "createdAt": isoformat(self.created_at),
        }


class MonthlyBonusPlan(Base):
    __tablename__ = "monthly_bonus_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    min_amount: Mapped[float] = mapped_column(Float, nullable=False)
    bonus_percent: Mapped[float] = mapped_column(Float, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "minAmount": self.min_amount,
            "bonusPercent": self.bonus_percent,
            "isActive": self.is_active,
        }


class BonusPayment(Base):
    __tablename__ = "bonus_payments"
    __table_args__ = (
        Index("idx_bonus_payments_processor", "processor_id"),
        Index("idx_bonus_payments_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    processor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    deposit_id: Mapped[int | None] = mapped_column(ForeignKey("deposits.id", ondelete="SET NULL"), nullable=True)

    type: Mapped[str] = mapped_column(String(32), nullable=False)  # DEPOSIT_BONUS, MONTHLY_PLAN_BONUS
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")  # HELD, PENDING, PAID, CANCELLED, BURNED
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    held_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    burned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    burn_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    processor: Mapped[User] = relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "processorId": self.processor_id,
            "processorName": self.processor.name if self.processor else None,
            "depositId": self.deposit_id,
            "type": self.type,
            "amount": self.amount,
            "status": self.status,
            "description": self.description,
            "periodStart": isoformat(self.period_start),
            "periodEnd": isoformat(self.period_end),
            "heldUntil": isoformat(self.held_until),
            "paidAt": isoformat(self.paid_at),
            "burnedAt": isoformat(self.burned_at),
            "burnReason": self.burn_reason,
            "createdAt": isoformat(self.created_at),
        }
