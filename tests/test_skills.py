import main
from tests.helpers import PNG


def add_skill(client, headers, **fields):
    res = client.post("/api/skills", json=fields, headers=headers)
    assert res.status_code == 201, res.json()
    return res.json()["data"]


def test_create_then_duplicate_name(client, admin_headers):
    res = client.post("/api/skills", json={"name": "React", "category": "Frontend", "proficiency": 80}, headers=admin_headers)
    assert res.status_code == 201
    assert res.json()["data"]["proficiency"] == 80
    assert res.json()["data"]["isActive"] is True

    again = client.post("/api/skills", json={"name": "React", "category": "Backend", "proficiency": 10}, headers=admin_headers)
    assert again.status_code == 400
    assert "already exists" in again.json()["message"]


def test_create_enforces_constraints(client, admin_headers):
    res = client.post("/api/skills", json={"name": " ", "category": "Cooking", "proficiency": 101}, headers=admin_headers)
    assert res.status_code == 400
    assert {e["field"] for e in res.json()["errors"]} == {"name", "category", "proficiency"}

    negative = client.post(
        "/api/skills",
        json={"name": "Go", "category": "Backend", "proficiency": 50, "yearsOfExperience": -1},
        headers=admin_headers,
    )
    assert negative.status_code == 400


def test_listing_is_public_sorted_and_grouped(client, admin_headers):
    add_skill(client, admin_headers, name="Vue", category="Frontend", proficiency=60, order=1)
    add_skill(client, admin_headers, name="React", category="Frontend", proficiency=80, order=1)
    add_skill(client, admin_headers, name="Svelte", category="Frontend", proficiency=40, order=0)
    add_skill(client, admin_headers, name="Django", category="Backend", proficiency=70)

    res = client.get("/api/skills")
    assert res.status_code == 200
    body = res.json()
    assert [s["name"] for s in body["data"]] == ["Django", "Svelte", "React", "Vue"]
    assert list(body["grouped"]) == ["Backend", "Frontend"]
    assert [s["name"] for s in body["grouped"]["Frontend"]] == ["Svelte", "React", "Vue"]


def test_listing_filters(client, admin_headers):
    add_skill(client, admin_headers, name="Docker", category="DevOps", proficiency=60)
    kube = add_skill(client, admin_headers, name="Kubernetes", category="DevOps", proficiency=30)
    add_skill(client, admin_headers, name="Git", category="Tools", proficiency=90)
    client.patch(f"/api/skills/{kube['id']}/toggle-active", headers=admin_headers)

    devops = client.get("/api/skills", params={"category": "DevOps", "isActive": "true"}).json()
    assert [s["name"] for s in devops["data"]] == ["Docker"]
    inactive = client.get("/api/skills", params={"isActive": "false"}).json()
    assert [s["name"] for s in inactive["data"]] == ["Kubernetes"]


def test_get_by_id(client, admin_headers):
    skill = add_skill(client, admin_headers, name="SQL", category="Database", proficiency=75)
    assert client.get(f"/api/skills/{skill['id']}").json()["data"]["name"] == "SQL"
    assert client.get("/api/skills/64b7f0c2a1b2c3d4e5f60718").status_code == 404


def test_update_checks_name_collisions(client, admin_headers):
    add_skill(client, admin_headers, name="React", category="Frontend", proficiency=80)
    vue = add_skill(client, admin_headers, name="Vue", category="Frontend", proficiency=60)

    clash = client.put(f"/api/skills/{vue['id']}", json={"name": "React"}, headers=admin_headers)
    assert clash.status_code == 400
    assert clash.json()["message"] == "Skill name already exists"

    same = client.put(f"/api/skills/{vue['id']}", json={"name": "Vue", "proficiency": 65}, headers=admin_headers)
    assert same.status_code == 200
    assert same.json()["data"]["proficiency"] == 65
    assert same.json()["data"]["category"] == "Frontend"


def test_update_rejects_out_of_range(client, admin_headers):
    skill = add_skill(client, admin_headers, name="Rust", category="Backend", proficiency=40)
    res = client.put(f"/api/skills/{skill['id']}", json={"proficiency": -3}, headers=admin_headers)
    assert res.status_code == 400
    assert client.get(f"/api/skills/{skill['id']}").json()["data"]["proficiency"] == 40


def test_toggle_active_message(client, admin_headers):
    skill = add_skill(client, admin_headers, name="Flutter", category="Mobile", proficiency=50)
    res = client.patch(f"/api/skills/{skill['id']}/toggle-active", headers=admin_headers).json()
    assert res["message"] == "Skill deactivated successfully"
    assert res["data"]["isActive"] is False
    res = client.patch(f"/api/skills/{skill['id']}/toggle-active", headers=admin_headers).json()
    assert res["message"] == "Skill activated successfully"


def test_icon_upload_supersedes_previous(client, admin_headers, s3, store):
    skill = add_skill(client, admin_headers, name="Python", category="Backend", proficiency=90)
    first = client.put(
        f"/api/skills/{skill['id']}/icon",
        files={"skillIcon": ("python.svg", b"<svg/>", "image/svg+xml")},
        headers=admin_headers,
    )
    assert first.status_code == 200
    first_url = first.json()["data"]["icon"]
    assert store.key_for(first_url).startswith("skills/")

    second = client.put(
        f"/api/skills/{skill['id']}/icon",
        files={"skillIcon": ("python.png", PNG, "image/png")},
        headers=admin_headers,
    )
    assert list(s3.objects) == [store.key_for(second.json()["data"]["icon"])]


def test_delete_removes_skill_and_icon(client, admin_headers, s3):
    skill = add_skill(client, admin_headers, name="Java", category="Backend", proficiency=30)
    client.put(
        f"/api/skills/{skill['id']}/icon",
        files={"skillIcon": ("java.png", PNG, "image/png")},
        headers=admin_headers,
    )
    res = client.delete(f"/api/skills/{skill['id']}", headers=admin_headers)
    assert res.status_code == 200
    assert s3.objects == {}
    assert client.get(f"/api/skills/{skill['id']}").status_code == 404


def test_skill_mutations_need_admin(client, user_headers):
    assert client.post("/api/skills", json={"name": "X", "category": "Other", "proficiency": 1}, headers=user_headers).status_code == 403
    assert client.patch("/api/skills/64b7f0c2a1b2c3d4e5f60718/toggle-active").status_code == 401


def test_unique_index_backs_up_the_name_check(client, admin_headers, monkeypatch):
    add_skill(client, admin_headers, name="Go", category="Backend", proficiency=70)
    ruby = add_skill(client, admin_headers, name="Ruby", category="Backend", proficiency=40)
    monkeypatch.setattr(main, "find_document", lambda name, query: None)

    again = client.post("/api/skills", json={"name": "Go", "category": "Backend", "proficiency": 10}, headers=admin_headers)
    assert again.status_code == 400
    assert "already exists" in again.json()["message"]

    rename = client.put(f"/api/skills/{ruby['id']}", json={"name": "Go"}, headers=admin_headers)
    assert rename.status_code == 400
    assert "already exists" in rename.json()["message"]
    assert client.get(f"/api/skills/{ruby['id']}").json()["data"]["name"] == "Ruby"


def test_json_icon_change_reclaims_stored_icon(client, admin_headers, s3, store):
    skill = add_skill(client, admin_headers, name="Elixir", category="Backend", proficiency=20)
    client.put(
        f"/api/skills/{skill['id']}/icon",
        files={"skillIcon": ("elixir.png", PNG, "image/png")},
        headers=admin_headers,
    )
    assert len(s3.objects) == 1

    res = client.put(f"/api/skills/{skill['id']}", json={"icon": "https://cdn.example.com/elixir.svg"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["data"]["icon"] == "https://cdn.example.com/elixir.svg"
    assert s3.objects == {}
