from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.umbra.models import Base, User
from app.umbra.timeutil import isoformat


class SalarySetting(Base):
    __tablename__ = "salary_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    hourly_rate: Mapped[float] = mapped_column(Float, nullable=False, default=2.0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "hourlyRate": self.hourly_rate,
            "isActive": self.is_active,
            "createdAt": isoformat(self.created_at),
        }


class SalaryRequest(Base):
    __tablename__ = "salary_requests"
    __table_args__ = (
        Index("idx_salary_requests_processor", "processor_id"),
        Index("idx_salary_requests_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    processor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    requested_amount: Mapped[float] = mapped_column(Float, nullable=False)
    calculated_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    payment_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")  # PENDING, APPROVED, REJECTED, PAID
    admin_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    processor: Mapped[User] = relationship("User", foreign_keys=[processor_id], lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "processorId": self.processor_id,
            "processorName": self.processor.name if self.processor else None,
            "periodStart": isoformat(self.period_start),
            "periodEnd": isoformat(self.period_end),
            "requestedAmount": self.requested_amount,
            "calculatedAmount": self.calculated_amount,
            "paymentDetails": self.payment_details,
            "comment": self.comment,
            "status": self.status,
            "adminComment": self.admin_comment,
            "reviewedById": self.reviewed_by_id,
            "reviewedAt": isoformat(self.reviewed_at),
            "paidAt": isoformat(self.paid_at),
            "createdAt": isoformat(self.created_at),
        }
