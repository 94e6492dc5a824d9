from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, jsonify

from app.umbra.audit import record_event
from app.umbra.db import db_session
from app.umbra.modules.documentation.models import Course, DocPage, DocSection
from app.umbra.modules.documentation.service import (
    DocumentationError,
    create_page,
    is_valid_slug,
    reorder_pages,
    update_page,
    validate_page_payload,
    validate_section_payload,
)
from app.umbra.rbac import require_admin
from app.umbra.utils import clean_str, current_user, get_payload, json_error, parse_bool, parse_int, validation_error

bp = Blueprint("documentation_admin", __name__)


def _get_or_404(model, obj_id: int):
    obj = db_session().get(model, obj_id)
    if not obj:
        abort(404)
    return obj


# ---------- Sections ----------
@bp.get("/documentation/sections")
@require_admin
def sections_list():
    s = db_session()
    sections = s.query(DocSection).order_by(DocSection.order.asc(), DocSection.id.asc()).all()
    return jsonify({"sections": [x.to_dict() for x in sections]})


@bp.post("/documentation/sections")
@require_admin
def sections_create():
    s = db_session()
    payload = get_payload()
    errors = validate_section_payload(payload)
    if errors:
        return validation_error(errors)
    key = clean_str(payload["key"])
    if s.query(DocSection).filter(DocSection.key == key).first():
        return json_error("A section with this key already exists.", 409)

    now = datetime.utcnow()
    section = DocSection(
        key=key,
        name=clean_str(payload["name"]),
        description=clean_str(payload.get("description")) or None,
        order=parse_int(payload.get("order"), 0),
        is_visible=parse_bool(payload.get("isVisible"), default=True),
        created_at=now,
        updated_at=now,
    )
    s.add(section)
    s.flush()
    record_event(
        s,
        actor=current_user(),
        action="doc_section.create",
        entity_type="DocSection",
        entity_id=str(section.id),
        metadata={"key": key, "name": section.name},
    )
    s.commit()
    return jsonify({"section": section.to_dict()}), 201


@bp.put("/documentation/sections/<int:section_id>")
@require_admin
def sections_update(section_id: int):
    s = db_session()
    section = _get_or_404(DocSection, section_id)
    payload = get_payload()
    errors = validate_section_payload(payload, partial=True)
    if errors:
        return validation_error(errors)

    if "key" in payload:
        key = clean_str(payload["key"])
        if s.query(DocSection).filter(DocSection.key == key, DocSection.id != section.id).first():
            return json_error("A section with this key already exists.", 409)
        section.key = key
    if "name" in payload:
        section.name = clean_str(payload["name"])
    if "description" in payload:
        section.description = clean_str(payload.get("description")) or None
    if "order" in payload:
        section.order = parse_int(payload.get("order"), section.order)
    if "isVisible" in payload:
        section.is_visible = parse_bool(payload.get("isVisible"))
    section.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=current_user(),
        action="doc_section.edit",
        entity_type="DocSection",
        entity_id=str(section.id),
        metadata=section.to_dict(),
    )
    s.commit()
    return jsonify({"section": section.to_dict()})


@bp.delete("/documentation/sections/<int:section_id>")
@require_admin
def sections_delete(section_id: int):
    s = db_session()
    section = _get_or_404(DocSection, section_id)
    if section.pages:
        return json_error("Section still has pages. Move or delete them first.", 400)
    record_event(
        s,
        actor=current_user(),
        action="doc_section.delete",
        entity_type="DocSection",
        entity_id=str(section.id),
        metadata={"key": section.key},
    )
    s.delete(section)
    s.commit()
    return jsonify({"success": True})


# ---------- Pages ----------
@bp.get("/documentation")
@require_admin
def pages_index():
    s = db_session()
    sections = s.query(DocSection).order_by(DocSection.order.asc(), DocSection.id.asc()).all()
    return jsonify({"sections": [x.to_dict(pages=list(x.pages)) for x in sections]})


@bp.get("/documentation/<int:page_id>")
@require_admin
def pages_detail(page_id: int):
    page = _get_or_404(DocPage, page_id)
    return jsonify({"page": page.to_dict()})


@bp.post("/documentation")
@require_admin
def pages_create():
    s = db_session()
    payload = get_payload()
    errors = validate_page_payload(payload)
    if errors:
        return validation_error(errors)
    try:
        page = create_page(s, payload, current_user())
    except DocumentationError as e:
        return json_error(str(e), e.status)
    s.commit()
    return jsonify({"page": page.to_dict()}), 201


@bp.put("/documentation/<int:page_id>")
@require_admin
def pages_update(page_id: int):
    s = db_session()
    page = _get_or_404(DocPage, page_id)
    payload = get_payload()
    errors = validate_page_payload(payload, partial=True)
    if errors:
        return validation_error(errors)
    try:
        update_page(s, page, payload, current_user())
    except DocumentationError as e:
        return json_error(str(e), e.status)
    s.commit()
    return jsonify({"page": page.to_dict()})


@bp.delete("/documentation/<int:page_id>")
@require_admin
def pages_delete(page_id: int):
    s = db_session()
    page = _get_or_404(DocPage, page_id)
    s.query(DocPage).filter(DocPage.parent_id == page.id).update({"parent_id": None}, synchronize_session="fetch")
    record_event(
        s,
        actor=current_user(),
        action="doc_page.delete",
        entity_type="DocPage",
        entity_id=str(page.id),
        metadata={"slug": page.slug, "title": page.title},
    )
    s.delete(page)
    s.commit()
    return jsonify({"success": True})


@bp.post("/documentation/reorder")
@require_admin
def pages_reorder():
    s = db_session()
    items = get_payload().get("items")
    if not isinstance(items, list) or not items:
        return json_error("items must be a non-empty list.", 400)
    try:
        count = reorder_pages(s, items, current_user())
    except DocumentationError as e:
        return json_error(str(e), e.status)
    s.commit()
    return jsonify({"updated": count})


# ---------- Courses ----------
def _validate_course(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "title" in payload:
        if not clean_str(payload.get("title")):
            errors.append("Title is required.")
    if not partial or "slug" in payload:
        if not is_valid_slug(clean_str(payload.get("slug"))):
            errors.append("Slug may contain lower-case letters, digits and hyphens only.")
    return errors


@bp.get("/courses")
@require_admin
def courses_list():
    s = db_session()
    courses = s.query(Course).order_by(Course.created_at.desc(), Course.id.desc()).all()
    return jsonify({"courses": [c.to_dict() for c in courses]})


@bp.post("/courses")
@require_admin
def courses_create():
    s = db_session()
    payload = get_payload()
    errors = _validate_course(payload)
    if errors:
        return validation_error(errors)
    slug = clean_str(payload["slug"])
    if s.query(Course).filter(Course.slug == slug).first():
        return json_error("A course with this slug already exists.", 409)

    now = datetime.utcnow()
    course = Course(
        title=clean_str(payload["title"]),
        slug=slug,
        description=clean_str(payload.get("description")) or None,
        category=clean_str(payload.get("category")) or "general",
        is_published=parse_bool(payload.get("isPublished")),
        created_at=now,
        updated_at=now,
    )
    s.add(course)
    s.flush()
    record_event(
        s,
        actor=current_user(),
        action="course.create",
        entity_type="Course",
        entity_id=str(course.id),
        metadata={"slug": slug},
    )
    s.commit()
    return jsonify({"course": course.to_dict()}), 201


@bp.put("/courses/<int:course_id>")
@require_admin
def courses_update(course_id: int):
    s = db_session()
    course = _get_or_404(Course, course_id)
    payload = get_payload()
    errors = _validate_course(payload, partial=True)
    if errors:
        return validation_error(errors)

    if "slug" in payload:
        slug = clean_str(payload["slug"])
        if s.query(Course).filter(Course.slug == slug, Course.id != course.id).first():
            return json_error("A course with this slug already exists.", 409)
        course.slug = slug
    if "title" in payload:
        course.title = clean_str(payload["title"])
    if "description" in payload:
        course.description = clean_str(payload.get("description")) or None
    if "category" in payload:
        course.category = clean_str(payload.get("category")) or "general"
    if "isPublished" in payload:
        course.is_published = parse_bool(payload.get("isPublished"))
    course.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=current_user(),
        action="course.edit",
        entity_type="Course",
        entity_id=str(course.id),
        metadata=course.to_dict(),
    )
    s.commit()
    return jsonify({"course": course.to_dict()})


@bp.delete("/courses/<int:course_id>")
@require_admin
def courses_delete(course_id: int):
    s = db_session()
    course = _get_or_404(Course, course_id)
    record_event(
        s,
        actor=current_user(),
        action="course.delete",
        entity_type="Course",
        entity_id=str(course.id),
        metadata={"slug": course.slug},
    )
    s.delete(course)
    s.commit()
    return jsonify({"success": True})
