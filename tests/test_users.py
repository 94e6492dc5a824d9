from tests.conftest import ADMIN, PENDING, PROCESSOR


def test_list_users_filters_by_status(client, login):
    login()
    r = client.get("/api/admin/users")
    emails = {u["email"] for u in r.json["users"]}
    assert PENDING[0] not in emails

    r = client.get("/api/admin/users?status=pending")
    assert [u["email"] for u in r.json["users"]] == [PENDING[0]]

    r = client.get("/api/admin/users?status=all")
    assert r.json["total"] == 4

    r = client.get("/api/admin/users?status=all&role=processor")
    assert {u["email"] for u in r.json["users"]} == {PROCESSOR[0], "proc2@example.com"}


def test_approve_pending_user_allows_login(client, login, user_id):
    login()
    pid = user_id(PENDING[0])
    r = client.put(f"/api/admin/users/{pid}", json={"action": "approve"})
    assert r.status_code == 200
    assert r.json["user"]["status"] == "APPROVED"

    other = client.application.test_client()
    r = other.post("/api/auth/login", json={"email": PENDING[0], "password": PENDING[1]})
    assert r.status_code == 200


def test_block_user_denies_requests(client, login, user_id):
    login()
    pid = user_id(PROCESSOR[0])
    r = client.put(f"/api/admin/users/{pid}", json={"action": "block"})
    assert r.status_code == 200
    assert r.json["user"]["isBlocked"] is True

    other = client.application.test_client()
    r = other.post("/api/auth/login", json={"email": PROCESSOR[0], "password": PROCESSOR[1]})
    assert r.status_code == 403

    r = client.post(f"/api/admin/users/{pid}/toggle-status")
    assert r.json["user"]["isBlocked"] is False


def test_admin_accounts_are_protected(client, login, user_id):
    login()
    aid = user_id(ADMIN[0])
    r = client.put(f"/api/admin/users/{aid}", json={"action": "block"})
    assert r.status_code == 403
    r = client.delete(f"/api/admin/users/{aid}")
    assert r.status_code == 403


def test_invalid_action_and_missing_user(client, login, user_id):
    login()
    r = client.put(f"/api/admin/users/{user_id(PROCESSOR[0])}", json={"action": "explode"})
    assert r.status_code == 400
    r = client.put("/api/admin/users/9999", json={"action": "approve"})
    assert r.status_code == 404


def test_update_user_details(client, login, user_id):
    login()
    pid = user_id(PROCESSOR[0])
    r = client.put(
        f"/api/admin/users/{pid}",
        json={"action": "update", "name": "Renamed", "email": "proc2@example.com"},
    )
    assert r.status_code == 409

    r = client.put(f"/api/admin/users/{pid}", json={"action": "update", "name": "Renamed", "role": "buyer"})
    assert r.status_code == 200
    assert r.json["user"]["name"] == "Renamed"
    assert r.json["user"]["role"] == "BUYER"


def test_create_and_delete_user(client, login):
    login()
    r = client.post(
        "/api/admin/users",
        json={"name": "Made By Admin", "email": "made@example.com", "password": "made123", "role": "PROCESSOR"},
    )
    assert r.status_code == 201
    new_id = r.json["user"]["id"]
    assert r.json["user"]["status"] == "APPROVED"

    r = client.delete(f"/api/admin/users/{new_id}")
    assert r.status_code == 200

    r = client.get("/api/admin/audit?action=user.")
    actions = [e["action"] for e in r.json["events"]]
    assert "user.create" in actions
    assert "user.delete" in actions
