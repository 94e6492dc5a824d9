from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING

from app.umbra.audit import record_event
from app.umbra.utils import clean_str, parse_bool, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.umbra.models import User
    from app.umbra.modules.documentation.models import DocPage, DocSection

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
_KEY_RE = re.compile(r"^[a-z0-9_-]+$")


class DocumentationError(ValueError):
    def __init__(self, message: str, status: int = 400) -> None:
        super().__init__(message)
        self.status = status


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").strip().lower())
    return slug.strip("-")


def is_valid_slug(slug: str) -> bool:
    return bool(_SLUG_RE.match(slug or ""))


def validate_section_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "key" in payload:
        key = clean_str(payload.get("key"))
        if not key:
            errors.append("Key is required.")
        elif not _KEY_RE.match(key):
            errors.append("Key may contain lower-case letters, digits, '-' and '_' only.")
    if not partial or "name" in payload:
        if not clean_str(payload.get("name")):
            errors.append("Name is required.")
    return errors


def validate_page_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate documentation page payload. Returns list of errors."""
    errors = []
    if not partial or "title" in payload:
        if not clean_str(payload.get("title")):
            errors.append("Title is required.")
    if not partial or "slug" in payload:
        slug = clean_str(payload.get("slug"))
        if not slug:
            errors.append("Slug is required.")
        elif not is_valid_slug(slug):
            errors.append("Slug may contain lower-case letters, digits and hyphens only.")
    if not partial or "sectionId" in payload:
        if not parse_int(payload.get("sectionId")):
            errors.append("sectionId is required.")
    return errors


def _check_page_conflicts(
    s: "Session", *, slug: str, title: str, section_id: int, page_id: int | None = None
) -> None:
    from app.umbra.modules.documentation.models import DocPage, DocSection

    if not s.get(DocSection, section_id):
        raise DocumentationError("Section not found.", 404)

    q = s.query(DocPage).filter(DocPage.slug == slug)
    if page_id is not None:
        q = q.filter(DocPage.id != page_id)
    if q.first():
        raise DocumentationError("A page with this slug already exists.", 409)

    q = s.query(DocPage).filter(DocPage.section_id == section_id, DocPage.title == title)
    if page_id is not None:
        q = q.filter(DocPage.id != page_id)
    if q.first():
        raise DocumentationError("A page with this title already exists in the section.", 409)


def _check_parent(s: "Session", parent_id: int | None, page_id: int | None = None) -> None:
    from app.umbra.modules.documentation.models import DocPage

    if parent_id is None:
        return
    if page_id is not None and parent_id == page_id:
        raise DocumentationError("A page cannot be its own parent.")
    if not s.get(DocPage, parent_id):
        raise DocumentationError("Parent page not found.", 404)


def create_page(s: "Session", payload: dict, user: "User") -> "DocPage":
    from app.umbra.modules.documentation.models import DocPage

    title = clean_str(payload["title"])
    slug = clean_str(payload["slug"])
    section_id = parse_int(payload.get("sectionId"))
    parent_id = parse_int(payload.get("parentId"))
    _check_page_conflicts(s, slug=slug, title=title, section_id=section_id)
    _check_parent(s, parent_id)

    order = parse_int(payload.get("order"))
    if order is None:
        order = s.query(DocPage).filter(DocPage.section_id == section_id).count()

    now = datetime.utcnow()
    page = DocPage(
        title=title,
        slug=slug,
        description=clean_str(payload.get("description")) or None,
        content=payload.get("content") or "",
        section_id=section_id,
        parent_id=parent_id,
        order=order,
        is_published=parse_bool(payload.get("isPublished"), default=True),
        created_at=now,
        updated_at=now,
    )
    s.add(page)
    s.flush()
    record_event(
        s,
        actor=user,
        action="doc_page.create",
        entity_type="DocPage",
        entity_id=str(page.id),
        metadata={"title": title, "slug": slug, "section_id": section_id},
    )
    return page


def update_page(s: "Session", page: "DocPage", payload: dict, user: "User") -> dict:
    title = clean_str(payload.get("title")) or page.title
    slug = clean_str(payload.get("slug")) or page.slug
    section_id = parse_int(payload.get("sectionId"), page.section_id)
    _check_page_conflicts(s, slug=slug, title=title, section_id=section_id, page_id=page.id)

    changes = {}
    if "parentId" in payload:
        parent_id = parse_int(payload.get("parentId"))
        _check_parent(s, parent_id, page.id)
        if parent_id != page.parent_id:
            changes["parent_id"] = {"old": page.parent_id, "new": parent_id}
            page.parent_id = parent_id

    for attr, new in (("title", title), ("slug", slug), ("section_id", section_id)):
        if getattr(page, attr) != new:
            changes[attr] = {"old": getattr(page, attr), "new": new}
            setattr(page, attr, new)
    if "description" in payload:
        page.description = clean_str(payload.get("description")) or None
    if "content" in payload:
        page.content = payload.get("content") or ""
        changes["content"] = "updated"
    if "order" in payload:
        page.order = parse_int(payload.get("order"), page.order)
    if "isPublished" in payload:
        new_published = parse_bool(payload.get("isPublished"))
        if new_published != page.is_published:
            changes["is_published"] = {"old": page.is_published, "new": new_published}
            page.is_published = new_published

    page.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="doc_page.edit",
        entity_type="DocPage",
        entity_id=str(page.id),
        metadata={"changes": changes},
    )
    return changes


def reorder_pages(s: "Session", items: list, user: "User") -> int:
    """Apply [{id, order}] to pages. Unknown ids are rejected before anything changes."""
    from app.umbra.modules.documentation.models import DocPage

    wanted: dict[int, int] = {}
    for item in items:
        if not isinstance(item, dict):
            raise DocumentationError("Each item must be an object with id and order.")
        page_id = parse_int(item.get("id"))
        order = parse_int(item.get("order"))
        if page_id is None or order is None:
            raise DocumentationError("Each item must be an object with id and order.")
        wanted[page_id] = order

    pages = s.query(DocPage).filter(DocPage.id.in_(list(wanted))).all() if wanted else []
    if len(pages) != len(wanted):
        raise DocumentationError("One or more pages were not found.", 404)
    now = datetime.utcnow()
    for page in pages:
        page.order = wanted[page.id]
        page.updated_at = now
    record_event(
        s,
        actor=user,
        action="doc_page.reorder",
        entity_type="DocPage",
        metadata={"orders": {str(k): v for k, v in wanted.items()}},
    )
    return len(pages)


def visible_sections(s: "Session") -> list["DocSection"]:
    from app.umbra.modules.documentation.models import DocSection

    return (
        s.query(DocSection)
        .filter(DocSection.is_visible.is_(True))
        .order_by(DocSection.order.asc(), DocSection.id.asc())
        .all()
    )
