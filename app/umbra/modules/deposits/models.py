from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.umbra.models import Base, User
from app.umbra.timeutil import isoformat


class Deposit(Base):
    __tablename__ = "deposits"
    __table_args__ = (
        Index("idx_deposits_processor_created", "processor_id", "created_at"),
        Index("idx_deposits_status", "status"),
        Index("idx_deposits_player_email", "player_email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    processor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Player
    player_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    player_nick: Mapped[str | None] = mapped_column(String(255), nullable=True)
    player_email: Mapped[str] = mapped_column(String(320), nullable=False)

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(16), nullable=False)  # upper-case ticker / ISO code
    currency_type: Mapped[str] = mapped_column(String(8), nullable=False, default="FIAT")  # CRYPTO, FIAT
    payment_method: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Calculated at creation (recomputed when the amount changes)
    bonus_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    bonus_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    platform_commission_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    platform_commission_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    processor_earnings: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")  # PENDING, APPROVED, REJECTED, PROCESSING

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    processor: Mapped[User] = relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "processorId": self.processor_id,
            "processorName": self.processor.name if self.processor else None,
            "playerId": self.player_id,
            "playerNick": self.player_nick,
            "playerEmail": self.player_email,
            "amount": self.amount,
            "currency": self.currency,
            "currencyType": self.currency_type,
            "paymentMethod": self.payment_method,
            "notes": self.notes,
            "bonusRate": self.bonus_rate,
            "bonusAmount": self.bonus_amount,
            "platformCommissionPercent": self.platform_commission_percent,
            "platformCommissionAmount": self.platform_commission_amount,
            "processorEarnings": self.processor_earnings,
            "status": self.status,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
