from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.umbra.models import Base
from app.umbra.timeutil import isoformat


class DocSection(Base):
    __tablename__ = "doc_sections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    pages: Mapped[list["DocPage"]] = relationship(
        "DocPage",
        back_populates="section",
        order_by="DocPage.order",
        lazy="selectin",
    )

    def to_dict(self, *, pages: list["DocPage"] | None = None) -> dict:
        d = {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "order": self.order,
            "isVisible": self.is_visible,
        }
        if pages is not None:
            d["pages"] = [p.to_dict(include_content=False) for p in pages]
        return d


class DocPage(Base):
    __tablename__ = "doc_pages"
    __table_args__ = (
        UniqueConstraint("section_id", "title", name="uq_doc_pages_section_title"),
        Index("idx_doc_pages_section_order", "section_id", "order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    section_id: Mapped[int] = mapped_column(ForeignKey("doc_sections.id", ondelete="CASCADE"), nullable=False)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("doc_pages.id", ondelete="SET NULL"), nullable=True)

    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    section: Mapped[DocSection] = relationship("DocSection", back_populates="pages")

    def to_dict(self, *, include_content: bool = True) -> dict:
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "slug": self.slug,
            "sectionId": self.section_id,
            "parentId": self.parent_id,
            "order": self.order,
            "isPublished": self.is_published,
            "updatedAt": isoformat(self.updated_at),
        }
        if include_content:
            d["content"] = self.content
        return d


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="general")
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "category": self.category,
            "isPublished": self.is_published,
            "updatedAt": isoformat(self.updated_at),
        }
