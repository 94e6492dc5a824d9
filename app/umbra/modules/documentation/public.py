from flask import Blueprint, abort, jsonify

from app.umbra.db import db_session
from app.umbra.modules.documentation.models import Course, DocPage, DocSection
from app.umbra.modules.documentation.service import visible_sections

bp = Blueprint("documentation_public", __name__)


@bp.get("/documentation")
def documentation_index():
    """Visible sections with their published pages (no page bodies)."""
    s = db_session()
    sections = []
    for section in visible_sections(s):
        pages = [p for p in section.pages if p.is_published]
        sections.append(section.to_dict(pages=pages))
    return jsonify({"sections": sections})


@bp.get("/documentation/<slug>")
def documentation_page(slug: str):
    s = db_session()
    page = (
        s.query(DocPage)
        .join(DocSection, DocSection.id == DocPage.section_id)
        .filter(DocPage.slug == slug)
        .filter(DocPage.is_published.is_(True))
        .filter(DocSection.is_visible.is_(True))
        .one_or_none()
    )
    if not page:
        abort(404)
    return jsonify({"page": page.to_dict(), "section": page.section.to_dict()})


@bp.get("/courses")
def courses_index():
    s = db_session()
    courses = (
        s.query(Course)
        .filter(Course.is_published.is_(True))
        .order_by(Course.title.asc())
        .all()
    )
    return jsonify({"courses": [c.to_dict() for c in courses]})
