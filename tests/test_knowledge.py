"""Tests for knowledge bases, entries, role binding and prompt enhancement."""

import asyncio
import uuid

import pytest

from floaty.knowledge import enhancement, service

QUANTUM = {"name": "量子计算", "keywords": ["量子", "qubit"], "explanation": "利用量子叠加进行计算"}
FASTAPI = {"name": "FastAPI", "keywords": ["python", "asgi"], "explanation": "A Python web framework"}


@pytest.fixture
def base(client, auth_header):
    resp = client.post("/api/v1/knowledge/bases", json={"name": "Physics"}, headers=auth_header)
    assert resp.status_code == 201
    return resp.json()["data"]


def add_entry(client, auth_header, base_id, entry):
    resp = client.post(f"/api/v1/knowledge/bases/{base_id}/entries", json=entry, headers=auth_header)
    assert resp.status_code == 201
    return resp.json()["data"]


def seed_role(db, owner_id, base_id=None):
    role_id = str(uuid.uuid4())
    db.tables.setdefault("ai_roles", []).append({"id": role_id, "user_id": owner_id, "knowledge_base_id": base_id})
    return role_id


# --- Knowledge bases ---

def test_create_and_list_bases(client, auth_header, other_auth_header, user_id, base):
    assert base["user_id"] == user_id
    assert base["description"] == ""
    client.post("/api/v1/knowledge/bases", json={"name": "Theirs"}, headers=other_auth_header)

    resp = client.get("/api/v1/knowledge/bases", headers=auth_header)
    assert resp.status_code == 200
    assert [b["name"] for b in resp.json()["data"]] == ["Physics"]


def test_create_base_with_existing_id(client, auth_header):
    base_id = str(uuid.uuid4())
    resp = client.post("/api/v1/knowledge/bases", json={"id": base_id, "name": "One"}, headers=auth_header)
    assert resp.json()["data"]["id"] == base_id

    resp = client.post("/api/v1/knowledge/bases", json={"id": base_id, "name": "Two"}, headers=auth_header)
    assert resp.status_code == 409


def test_create_base_requires_name(client, auth_header):
    resp = client.post("/api/v1/knowledge/bases", json={"name": ""}, headers=auth_header)
    assert resp.status_code == 422


def test_base_ownership(client, auth_header, other_auth_header, base):
    assert client.get(f"/api/v1/knowledge/bases/{base['id']}", headers=auth_header).status_code == 200
    assert client.get(f"/api/v1/knowledge/bases/{base['id']}", headers=other_auth_header).status_code == 403
    assert client.get(f"/api/v1/knowledge/bases/{uuid.uuid4()}", headers=auth_header).status_code == 404
    assert client.get("/api/v1/knowledge/bases").status_code == 401


def test_update_base(client, auth_header, base):
    resp = client.patch(
        f"/api/v1/knowledge/bases/{base['id']}",
        json={"name": "Quantum", "description": "Notes"},
        headers=auth_header,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["name"] == "Quantum"
    assert data["description"] == "Notes"

    resp = client.patch(f"/api/v1/knowledge/bases/{base['id']}", json={}, headers=auth_header)
    assert resp.json()["data"]["name"] == "Quantum"


def test_delete_base_removes_entries_and_unbinds_roles(client, auth_header, db, user_id, base):
    add_entry(client, auth_header, base["id"], QUANTUM)
    role_id = seed_role(db, user_id, base["id"])

    resp = client.delete(f"/api/v1/knowledge/bases/{base['id']}", headers=auth_header)
    assert resp.status_code == 204
    assert db.tables["knowledge_bases"] == []
    assert db.tables["knowledge_entries"] == []
    assert db.tables["ai_roles"][0] == {"id": role_id, "user_id": user_id, "knowledge_base_id": None}


def test_base_stats(client, auth_header, base):
    add_entry(client, auth_header, base["id"], QUANTUM)
    add_entry(client, auth_header, base["id"], FASTAPI)
    client.post("/api/v1/knowledge/bases", json={"name": "Empty"}, headers=auth_header)

    resp = client.get("/api/v1/knowledge/bases/stats", headers=auth_header)
    assert resp.status_code == 200
    stats = {s["name"]: s for s in resp.json()["data"]}
    assert stats["Physics"]["entryCount"] == 2
    assert stats["Physics"]["lastUpdated"]
    assert stats["Empty"]["entryCount"] == 0


# --- Entries ---

def test_add_and_list_entries(client, auth_header, base):
    entry = add_entry(client, auth_header, base["id"], QUANTUM)
    assert entry["knowledge_base_id"] == base["id"]
    assert entry["keywords"] == ["量子", "qubit"]

    resp = client.get(f"/api/v1/knowledge/bases/{base['id']}/entries", headers=auth_header)
    assert [e["name"] for e in resp.json()["data"]] == ["量子计算"]


def test_add_entry_to_foreign_base(client, other_auth_header, base):
    resp = client.post(f"/api/v1/knowledge/bases/{base['id']}/entries", json=QUANTUM, headers=other_auth_header)
    assert resp.status_code == 403


def test_import_entries(client, auth_header, db, base):
    resp = client.post(
        f"/api/v1/knowledge/bases/{base['id']}/entries/import",
        json={"entries": [QUANTUM, FASTAPI, {"name": "Bare"}]},
        headers=auth_header,
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert [e["name"] for e in data] == ["量子计算", "FastAPI", "Bare"]
    assert data[2]["keywords"] == []
    assert len(db.tables["knowledge_entries"]) == 3


def test_import_requires_entries(client, auth_header, base):
    resp = client.post(f"/api/v1/knowledge/bases/{base['id']}/entries/import", json={"entries": []}, headers=auth_header)
    assert resp.status_code == 422


def test_update_and_delete_entry(client, auth_header, other_auth_header, db, base):
    entry = add_entry(client, auth_header, base["id"], QUANTUM)

    resp = client.patch(f"/api/v1/knowledge/entries/{entry['id']}", json={"keywords": ["qubit"]}, headers=other_auth_header)
    assert resp.status_code == 403

    resp = client.patch(f"/api/v1/knowledge/entries/{entry['id']}", json={"keywords": ["qubit"]}, headers=auth_header)
    assert resp.status_code == 200
    assert resp.json()["data"]["keywords"] == ["qubit"]
    assert resp.json()["data"]["name"] == "量子计算"

    assert client.delete(f"/api/v1/knowledge/entries/{entry['id']}", headers=auth_header).status_code == 204
    assert db.tables["knowledge_entries"] == []
    assert client.delete(f"/api/v1/knowledge/entries/{entry['id']}", headers=auth_header).status_code == 404


def test_search_entries(client, auth_header, base):
    add_entry(client, auth_header, base["id"], QUANTUM)
    add_entry(client, auth_header, base["id"], FASTAPI)

    resp = client.get(f"/api/v1/knowledge/bases/{base['id']}/search?keywords=QUBIT", headers=auth_header)
    assert [e["name"] for e in resp.json()["data"]] == ["量子计算"]

    resp = client.get(f"/api/v1/knowledge/bases/{base['id']}/search?keywords=web&keywords=叠加", headers=auth_header)
    assert sorted(e["name"] for e in resp.json()["data"]) == ["FastAPI", "量子计算"]

    resp = client.get(f"/api/v1/knowledge/bases/{base['id']}/search", headers=auth_header)
    assert resp.json()["data"] == []


# --- Role binding ---

def test_bind_role_to_base(client, auth_header, db, user_id, base):
    role_id = seed_role(db, user_id)

    resp = client.put(f"/api/v1/knowledge/roles/{role_id}/base", json={"knowledge_base_id": base["id"]}, headers=auth_header)
    assert resp.status_code == 200
    assert resp.json()["data"] == {"role_id": role_id, "knowledge_base_id": base["id"]}

    resp = client.get(f"/api/v1/knowledge/roles/{role_id}/base", headers=auth_header)
    assert resp.json()["data"]["id"] == base["id"]

    client.put(f"/api/v1/knowledge/roles/{role_id}/base", json={"knowledge_base_id": None}, headers=auth_header)
    resp = client.get(f"/api/v1/knowledge/roles/{role_id}/base", headers=auth_header)
    assert resp.json()["data"] is None


def test_bind_role_rejects_foreign_role_and_base(client, auth_header, other_auth_header, db, base):
    role_id = seed_role(db, str(uuid.uuid4()))
    resp = client.put(f"/api/v1/knowledge/roles/{role_id}/base", json={"knowledge_base_id": base["id"]}, headers=auth_header)
    assert resp.status_code == 403

    resp = client.put(f"/api/v1/knowledge/roles/{role_id}/base", json={"knowledge_base_id": base["id"]}, headers=other_auth_header)
    assert resp.status_code == 403


def test_bind_unknown_role(client, auth_header, monkeypatch, base):
    monkeypatch.setattr(service, "ROLE_LOOKUP_DELAY_SECONDS", 0)
    resp = client.put("/api/v1/knowledge/roles/not-a-uuid/base", json={"knowledge_base_id": base["id"]}, headers=auth_header)
    assert resp.status_code == 404

    resp = client.put(f"/api/v1/knowledge/roles/{uuid.uuid4()}/base", json={"knowledge_base_id": base["id"]}, headers=auth_header)
    assert resp.status_code == 404


def test_bind_role_waits_for_synced_role(db, user_id):
    base = {"id": str(uuid.uuid4()), "user_id": user_id, "name": "Physics"}
    db.tables["knowledge_bases"] = [base]
    role_id = str(uuid.uuid4())
    delays = []

    async def sleep(seconds):
        # The role lands in the table while the lookup waits
        delays.append(seconds)
        db.tables.setdefault("ai_roles", []).append({"id": role_id, "user_id": user_id, "knowledge_base_id": None})

    result = asyncio.run(service.set_role_base(role_id, user_id, base["id"], sleep=sleep))
    assert result == {"role_id": role_id, "knowledge_base_id": base["id"]}
    assert delays == [service.ROLE_LOOKUP_DELAY_SECONDS]
    assert db.tables["ai_roles"][0]["knowledge_base_id"] == base["id"]


def test_role_without_base(client, auth_header, db, user_id):
    role_id = seed_role(db, user_id)
    assert client.get(f"/api/v1/knowledge/roles/{role_id}/base", headers=auth_header).json()["data"] is None
    assert client.get("/api/v1/knowledge/roles/local-role/base", headers=auth_header).json()["data"] is None


# --- Enhancement ---

def test_enhance_appends_matching_entries(client, auth_header, base):
    add_entry(client, auth_header, base["id"], QUANTUM)
    add_entry(client, auth_header, base["id"], FASTAPI)

    resp = client.post(
        "/api/v1/knowledge/enhance",
        json={"message": "什么是量子计算", "knowledge_base_id": base["id"], "system_prompt": "You are helpful."},
        headers=auth_header,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["knowledgeBaseId"] == base["id"]
    assert "量子计算" in data["extractedKeywords"]
    assert [e["name"] for e in data["knowledgeResults"][0]["entries"]] == ["量子计算"]
    prompt = data["systemPrompt"]
    assert prompt.startswith("You are helpful.\n\n[相关知识库信息]\n【量子计算】\n关键词：量子、qubit\n")
    assert prompt.endswith(enhancement.CONTEXT_INSTRUCTION)


def test_enhance_without_match_keeps_prompt(client, auth_header, base):
    add_entry(client, auth_header, base["id"], QUANTUM)
    resp = client.post(
        "/api/v1/knowledge/enhance",
        json={"message": "hello there", "knowledge_base_id": base["id"], "system_prompt": "Be brief."},
        headers=auth_header,
    )
    data = resp.json()["data"]
    assert data["extractedKeywords"] == ["hello", "there"]
    assert data["systemPrompt"] == "Be brief."


def test_enhance_through_role(client, auth_header, db, user_id, base):
    add_entry(client, auth_header, base["id"], FASTAPI)
    role_id = seed_role(db, user_id, base["id"])

    resp = client.post(
        "/api/v1/knowledge/enhance",
        json={"message": "How do I deploy an ASGI app?", "role_id": role_id},
        headers=auth_header,
    )
    data = resp.json()["data"]
    assert data["knowledgeBaseId"] == base["id"]
    assert "【FastAPI】" in data["systemPrompt"]


def test_enhance_without_base(client, auth_header):
    resp = client.post("/api/v1/knowledge/enhance", json={"message": "hi", "system_prompt": "Hello"}, headers=auth_header)
    data = resp.json()["data"]
    assert data["knowledgeBaseId"] is None
    assert data["knowledgeResults"] == []
    assert data["systemPrompt"] == "Hello"


def test_enhance_foreign_base(client, other_auth_header, base):
    resp = client.post(
        "/api/v1/knowledge/enhance",
        json={"message": "量子", "knowledge_base_id": base["id"]},
        headers=other_auth_header,
    )
    assert resp.status_code == 403


def test_enhance_sees_new_entries(client, auth_header, base):
    body = {"message": "tell me about asgi", "knowledge_base_id": base["id"]}
    first = client.post("/api/v1/knowledge/enhance", json=body, headers=auth_header).json()["data"]
    assert first["knowledgeResults"][0]["entries"] == []

    add_entry(client, auth_header, base["id"], FASTAPI)
    second = client.post("/api/v1/knowledge/enhance", json=body, headers=auth_header).json()["data"]
    assert [e["name"] for e in second["knowledgeResults"][0]["entries"]] == ["FastAPI"]


def test_enhance_min_relevance_score(client, auth_header, base):
    add_entry(client, auth_header, base["id"], FASTAPI)
    body = {"message": "python", "knowledge_base_id": base["id"], "min_relevance_score": 1, "max_results": 1}
    data = client.post("/api/v1/knowledge/enhance", json=body, headers=auth_header).json()["data"]
    assert len(data["knowledgeResults"]) == 1
    assert data["knowledgeResults"][0]["relevanceScore"] == 1


# --- Keyword extraction ---

def test_extract_keywords_latin():
    assert enhancement.extract_keywords("Python and FastAPI, with Python!") == ["fastapi", "python"]


def test_extract_keywords_chinese_windows():
    keywords = enhancement.extract_keywords("量子计算")
    assert keywords[0] == "量子计算"
    assert sorted(keywords) == sorted(["量子计算", "量子计", "子计算", "量子", "子计", "计算"])


def test_extract_keywords_limits_and_empty():
    assert enhancement.extract_keywords("!!! ...") == []
    assert len(enhancement.extract_keywords("alpha beta gamma delta epsilon zeta theta iota kappa lambda omicron")) == 10


def test_hybrid_search_ranks_entries_found_both_ways_first():
    entries = [
        {"id": "1", "name": "Alpha", "keywords": ["zeta"], "explanation": ""},
        {"id": "2", "name": "Beta", "keywords": ["gamma"], "explanation": ""},
    ]
    known = enhancement.base_keywords(entries)
    result = enhancement.hybrid_search(entries, known, "gamma and alp", ["alp", "gamma"])
    assert [e["id"] for e in result.entries] == ["2", "1"]
    assert "gamma" in result.matched_keywords
