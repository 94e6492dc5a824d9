from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.umbra.models import Base
from app.umbra.timeutil import isoformat


class FinanceAccount(Base):
    __tablename__ = "finance_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="OTHER")  # BANK, CRYPTO, CASH, OTHER
    currency: Mapped[str] = mapped_column(String(16), nullable=False, default="USD")
    balance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    commission: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)  # percent
    cryptocurrencies_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    @property
    def cryptocurrencies(self) -> list[str]:
        if not self.cryptocurrencies_json:
            return []
        return json.loads(self.cryptocurrencies_json)

    @cryptocurrencies.setter
    def cryptocurrencies(self, values: list[str] | None) -> None:
        self.cryptocurrencies_json = json.dumps(list(values)) if values else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "currency": self.currency,
            "balance": round(self.balance or 0.0, 2),
            "commission": self.commission,
            "cryptocurrencies": self.cryptocurrencies,
            "description": self.description,
            "isArchived": self.is_archived,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class FinanceCategory(Base):
    __tablename__ = "finance_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="EXPENSE")  # INCOME, EXPENSE
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="#3B82F6")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "color": self.color,
            "description": self.description,
            "isArchived": self.is_archived,
        }


class Counterparty(Base):
    __tablename__ = "finance_counterparties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="CLIENT")  # CLIENT, SUPPLIER, PARTNER, EMPLOYEE, OTHER
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    tax_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bank_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "taxNumber": self.tax_number,
            "bankDetails": self.bank_details,
            "isArchived": self.is_archived,
        }


class FinanceProject(Base):
    __tablename__ = "finance_projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")  # ACTIVE, COMPLETED, PAUSED
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "isArchived": self.is_archived,
        }


class FinanceTransaction(Base):
    __tablename__ = "finance_transactions"
    __table_args__ = (
        Index("idx_finance_transactions_account_date", "account_id", "date"),
        Index("idx_finance_transactions_date", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("finance_accounts.id", ondelete="CASCADE"), nullable=False)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("finance_categories.id", ondelete="SET NULL"), nullable=True)
    counterparty_id: Mapped[int | None] = mapped_column(
        ForeignKey("finance_counterparties.id", ondelete="SET NULL"), nullable=True
    )
    project_id: Mapped[int | None] = mapped_column(ForeignKey("finance_projects.id", ondelete="SET NULL"), nullable=True)

    type: Mapped[str] = mapped_column(String(16), nullable=False)  # INCOME, EXPENSE
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    commission_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    commission_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    net_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    account: Mapped[FinanceAccount] = relationship("FinanceAccount", lazy="joined")
    category: Mapped[FinanceCategory | None] = relationship("FinanceCategory", lazy="joined")
    counterparty: Mapped[Counterparty | None] = relationship("Counterparty", lazy="joined")
    project: Mapped[FinanceProject | None] = relationship("FinanceProject", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "account": {
                "id": self.account.id,
                "name": self.account.name,
                "currency": self.account.currency,
            }
            if self.account
            else None,
            "categoryId": self.category_id,
            "category": {"id": self.category.id, "name": self.category.name} if self.category else None,
            "counterpartyId": self.counterparty_id,
            "counterparty": {"id": self.counterparty.id, "name": self.counterparty.name} if self.counterparty else None,
            "projectId": self.project_id,
            "project": {"id": self.project.id, "name": self.project.name} if self.project else None,
            "type": self.type,
            "amount": self.amount,
            "commissionPercent": self.commission_percent,
            "commissionAmount": self.commission_amount,
            "netAmount": self.net_amount,
            "description": self.description,
            "date": isoformat(self.date),
            "createdAt": isoformat(self.created_at),
        }
