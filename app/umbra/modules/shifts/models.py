from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.umbra.models import Base, User
from app.umbra.timeutil import isoformat


class ShiftSetting(Base):
    __tablename__ = "shift_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    shift_type: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)  # MORNING, DAY, NIGHT
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Local (business) wall-clock times
    start_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    start_minute: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    end_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    end_minute: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    timezone: Mapped[str] = mapped_column(String(8), nullable=False, default="+3")

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shiftType": self.shift_type,
            "name": self.name,
            "description": self.description,
            "startHour": self.start_hour,
            "startMinute": self.start_minute,
            "endHour": self.end_hour,
            "endMinute": self.end_minute,
            "timezone": self.timezone,
            "isActive": self.is_active,
        }


class ProcessorShift(Base):
    __tablename__ = "processor_shifts"
    __table_args__ = (
        UniqueConstraint("processor_id", "shift_date", name="uq_processor_shifts_processor_date"),
        Index("idx_processor_shifts_status", "status"),
        Index("idx_processor_shifts_date", "shift_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    processor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    shift_type: Mapped[str] = mapped_column(String(16), nullable=False)
    shift_date: Mapped[date] = mapped_column(Date, nullable=False)  # business date

    scheduled_start: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    scheduled_end: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    actual_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    actual_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="SCHEDULED")  # SCHEDULED, ACTIVE, COMPLETED, MISSED
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    processor: Mapped[User] = relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "processorId": self.processor_id,
            "processorName": self.processor.name if self.processor else None,
            "shiftType": self.shift_type,
            "shiftDate": isoformat(self.shift_date),
            "scheduledStart": isoformat(self.scheduled_start),
            "scheduledEnd": isoformat(self.scheduled_end),
            "actualStart": isoformat(self.actual_start),
            "actualEnd": isoformat(self.actual_end),
            "status": self.status,
            "notes": self.notes,
        }
