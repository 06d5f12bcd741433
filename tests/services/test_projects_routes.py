"""Projects API tests - create/read, snapshot history, rollback.

Tests cover:
    - POST /projects creates with defaults (201), blank name rejected (400)
    - GET /projects/{id} returns the document, 404 otherwise
    - Manual snapshots listed newest first without echoing captured files
    - Restore rolls files back; refused with 409 during a run
"""

import asyncio


async def test_create_project(client, store):
    response = await client.post(
        "/api/v1/projects",
        json={"name": "  Bakery  ", "files": {"index.html": "<h1/>"}},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "Bakery"
    assert body["agent_chat"] == []
    assert body["agent_status"] == "idle"
    assert (await store.get(body["id"]))["files"] == {"index.html": "<h1/>"}


async def test_create_blank_name_rejected(client):
    response = await client.post("/api/v1/projects", json={"name": "   "})
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["details"][0]["field"] == "body.name"


async def test_get_project(client, seed_project):
    response = await client.get(f"/api/v1/projects/{seed_project['id']}")
    assert response.status_code == 200
    assert response.json()["content"] == {"headline": "Fresh bread"}


async def test_get_missing_project(client):
    response = await client.get("/api/v1/projects/nope")
    assert response.status_code == 404
    assert response.json()["code"] == "RESOURCE_NOT_FOUND"


# ==============================================================================
# Snapshots
# ==============================================================================


async def test_manual_snapshots_listed(client, seed_project):
    url = f"/api/v1/projects/{seed_project['id']}/snapshots"

    created = await client.post(url, json={"summary": "Before redesign"})
    await client.post(url, json={})

    assert created.status_code == 201
    assert created.json()["kind"] == "manual"
    listed = (await client.get(url)).json()
    assert [s["summary"] for s in listed] == ["Manual snapshot", "Before redesign"]
    assert "files" not in listed[0]


async def test_snapshots_missing_project(client):
    response = await client.post("/api/v1/projects/nope/snapshots", json={})
    assert response.status_code == 404


async def test_restore_snapshot(client, store, seed_project):
    project_id = seed_project["id"]
    snapshot = (await client.post(
        f"/api/v1/projects/{project_id}/snapshots", json={},
    )).json()
    await store.update(project_id, {"files": {"broken.html": "oops"}})

    response = await client.post(
        f"/api/v1/projects/{project_id}/snapshots/{snapshot['id']}/restore",
    )
    assert response.status_code == 200
    assert response.json()["files"] == {"index.html": "<h1>Bakery</h1>"}


async def test_restore_while_running_409(client, provider, seed_project):
    project_id = seed_project["id"]
    snapshot = (await client.post(
        f"/api/v1/projects/{project_id}/snapshots", json={},
    )).json()
    release = asyncio.Event()
    provider.steps = [("wait", release)]
    await client.post(f"/api/v1/projects/{project_id}/agent", json={"prompt": "go"})

    response = await client.post(
        f"/api/v1/projects/{project_id}/snapshots/{snapshot['id']}/restore",
    )
    release.set()

    assert response.status_code == 409


async def test_restore_unknown_snapshot(client, seed_project):
    response = await client.post(
        f"/api/v1/projects/{seed_project['id']}/snapshots/missing/restore",
    )
    assert response.status_code == 404
