import pytest

from app.umbra.modules.documentation.service import is_valid_slug, slugify, validate_page_payload
from tests.conftest import PROCESSOR


@pytest.fixture()
def admin(client, login):
    login()
    return client


def _section(admin, key="getting-started", **extra):
    r = admin.post("/api/admin/documentation/sections", json={"key": key, "name": key.title(), **extra})
    assert r.status_code == 201, r.json
    return r.json["section"]


def _page(admin, section_id, slug, **extra):
    payload = {"title": slug.replace("-", " ").title(), "slug": slug, "sectionId": section_id, "content": "# Hello"}
    payload.update(extra)
    r = admin.post("/api/admin/documentation", json=payload)
    assert r.status_code == 201, r.json
    return r.json["page"]


def test_slug_helpers():
    assert slugify("  Getting Started: FAQ ") == "getting-started-faq"
    assert is_valid_slug("getting-started")
    assert not is_valid_slug("Getting_Started")
    assert not is_valid_slug("-leading")
    assert validate_page_payload({}) == ["Title is required.", "Slug is required.", "sectionId is required."]


def test_documentation_admin_requires_admin(client, login):
    login(PROCESSOR)
    assert client.get("/api/admin/documentation").status_code == 403


def test_sections_crud(admin):
    section = _section(admin)
    r = admin.post("/api/admin/documentation/sections", json={"key": "getting-started", "name": "Dup"})
    assert r.status_code == 409
    r = admin.post("/api/admin/documentation/sections", json={"key": "Bad Key", "name": "Bad"})
    assert r.status_code == 400

    r = admin.put(f"/api/admin/documentation/sections/{section['id']}", json={"name": "Start here", "order": 2})
    assert r.status_code == 200
    assert r.json["section"]["name"] == "Start here"

    _page(admin, section["id"], "intro")
    r = admin.delete(f"/api/admin/documentation/sections/{section['id']}")
    assert r.status_code == 400

    empty = _section(admin, key="empty")
    assert admin.delete(f"/api/admin/documentation/sections/{empty['id']}").status_code == 200


def test_page_conflicts(admin):
    section = _section(admin)
    _page(admin, section["id"], "intro")

    r = admin.post("/api/admin/documentation", json={"title": "Other", "slug": "intro", "sectionId": section["id"]})
    assert r.status_code == 409
    r = admin.post("/api/admin/documentation", json={"title": "Intro", "slug": "intro-2", "sectionId": section["id"]})
    assert r.status_code == 409
    r = admin.post("/api/admin/documentation", json={"title": "Lost", "slug": "lost", "sectionId": 999})
    assert r.status_code == 404
    r = admin.post(
        "/api/admin/documentation",
        json={"title": "Orphan", "slug": "orphan", "sectionId": section["id"], "parentId": 999},
    )
    assert r.status_code == 404


def test_page_update_reorder_and_delete(admin):
    section = _section(admin)
    parent = _page(admin, section["id"], "parent")
    child = _page(admin, section["id"], "child", parentId=parent["id"])
    assert parent["order"] == 0
    assert child["order"] == 1

    r = admin.put(f"/api/admin/documentation/{child['id']}", json={"parentId": child["id"]})
    assert r.status_code == 400

    r = admin.put(f"/api/admin/documentation/{child['id']}", json={"content": "Updated", "isPublished": False})
    assert r.status_code == 200
    assert r.json["page"]["content"] == "Updated"
    assert r.json["page"]["isPublished"] is False

    r = admin.post("/api/admin/documentation/reorder", json={"items": []})
    assert r.status_code == 400
    r = admin.post("/api/admin/documentation/reorder", json={"items": [{"id": 999, "order": 0}]})
    assert r.status_code == 404
    r = admin.post(
        "/api/admin/documentation/reorder",
        json={"items": [{"id": parent["id"], "order": 5}, {"id": child["id"], "order": 0}]},
    )
    assert r.json["updated"] == 2

    r = admin.get("/api/admin/documentation")
    pages = r.json["sections"][0]["pages"]
    assert [p["slug"] for p in pages] == ["child", "parent"]
    assert "content" not in pages[0]

    assert admin.delete(f"/api/admin/documentation/{parent['id']}").status_code == 200
    r = admin.get(f"/api/admin/documentation/{child['id']}")
    assert r.json["page"]["parentId"] is None


def test_public_documentation_hides_unpublished(admin):
    section = _section(admin)
    hidden_section = _section(admin, key="internal", isVisible=False)
    _page(admin, section["id"], "intro")
    _page(admin, section["id"], "draft", isPublished=False)
    _page(admin, hidden_section["id"], "secret")

    anon = admin.application.test_client()
    r = anon.get("/api/documentation")
    assert r.status_code == 200
    assert [x["key"] for x in r.json["sections"]] == ["getting-started"]
    assert [p["slug"] for p in r.json["sections"][0]["pages"]] == ["intro"]

    r = anon.get("/api/documentation/intro")
    assert r.status_code == 200
    assert r.json["page"]["content"] == "# Hello"
    assert r.json["section"]["key"] == "getting-started"

    assert anon.get("/api/documentation/draft").status_code == 404
    assert anon.get("/api/documentation/secret").status_code == 404


def test_courses(admin):
    r = admin.post("/api/admin/courses", json={"title": "Onboarding", "slug": "Onboarding!"})
    assert r.status_code == 400

    r = admin.post("/api/admin/courses", json={"title": "Onboarding", "slug": "onboarding", "isPublished": True})
    assert r.status_code == 201
    assert r.json["course"]["category"] == "general"
    course_id = r.json["course"]["id"]

    r = admin.post("/api/admin/courses", json={"title": "Again", "slug": "onboarding"})
    assert r.status_code == 409
    admin.post("/api/admin/courses", json={"title": "Draft", "slug": "draft"})

    anon = admin.application.test_client()
    assert [c["slug"] for c in anon.get("/api/courses").json["courses"]] == ["onboarding"]

    r = admin.put(f"/api/admin/courses/{course_id}", json={"isPublished": False})
    assert r.status_code == 200
    assert anon.get("/api/courses").json["courses"] == []

    assert admin.delete(f"/api/admin/courses/{course_id}").status_code == 200
    assert len(admin.get("/api/admin/courses").json["courses"]) == 1
