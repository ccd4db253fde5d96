"""Projects: folders of conversations with shared instructions and files."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from branchchat.main import create_app

MODEL = "claude-sonnet-4-5"


@pytest.fixture
def client(settings_env, scripted_model):
    with TestClient(create_app()) as test_client:
        yield test_client


def new_project(client: TestClient, name: str, **payload) -> dict:
    response = client.post("/api/projects", json={"name": name, **payload})
    assert response.status_code == 200
    return response.json()


def project_order(client: TestClient) -> list[str]:
    return [p["name"] for p in client.get("/api/projects").json()]


def test_project_crud(client):
    project = new_project(client, "Research", instructions="Cite sources.")
    assert project["instructions"] == "Cite sources."

    renamed = client.patch(f"/api/projects/{project['id']}", json={"name": "Papers"})
    assert renamed.json()["name"] == "Papers"
    assert renamed.json()["instructions"] == "Cite sources."
    assert client.patch(f"/api/projects/{project['id']}", json={"name": ""}).status_code == 400
    assert client.post("/api/projects", json={"name": ""}).status_code == 400

    assert client.delete(f"/api/projects/{project['id']}").json() == {"status": "deleted"}
    assert client.get(f"/api/projects/{project['id']}").status_code == 404
    assert client.delete(f"/api/projects/{project['id']}").status_code == 404


def test_activity_touches_the_project(client, scripted_model):
    first = new_project(client, "First")
    new_project(client, "Second")
    assert project_order(client) == ["Second", "First"]

    conversation = client.post("/api/conversations", json={"project_id": first["id"]}).json()
    assert conversation["project_id"] == first["id"]
    assert project_order(client) == ["First", "Second"]

    third = new_project(client, "Third")
    client.post(
        "/api/messages",
        json={"conversation_id": conversation["id"], "role": "user", "content": "note"},
    )
    assert project_order(client) == ["First", "Third", "Second"]

    client.patch(f"/api/conversations/{conversation['id']}", json={"project_id": third["id"]})
    assert project_order(client)[:2] == ["Third", "First"]
    assert [c["id"] for c in client.get("/api/conversations", params={"project_id": third["id"]}).json()] == [
        conversation["id"]
    ]
    assert client.get("/api/conversations", params={"project_id": first["id"]}).json() == []


def test_unknown_project_is_rejected(client):
    assert client.post("/api/conversations", json={"project_id": 999}).status_code == 404
    conversation = client.post("/api/conversations", json={}).json()
    assert client.patch(f"/api/conversations/{conversation['id']}", json={"project_id": 999}).status_code == 404


def test_deleting_a_project_keeps_its_conversations(client):
    project = new_project(client, "Temp")
    conversation = client.post("/api/conversations", json={"project_id": project["id"]}).json()

    client.delete(f"/api/projects/{project['id']}")

    assert client.get(f"/api/conversations/{conversation['id']}").json()["project_id"] is None


def test_project_files(client):
    project = new_project(client, "Files")
    url = f"/api/projects/{project['id']}/files"

    text = client.post(url, files={"file": ("notes.md", b"# Notes\nhello", "text/markdown")})
    assert text.status_code == 200
    assert text.json()["text_content"] == "# Notes\nhello"
    assert text.json()["data"] is None

    image = client.post(url, files={"file": ("dot.png", b"\x89PNG", "image/png")})
    assert image.json()["data"] == "iVBORw=="
    assert image.json()["size"] == 4

    assert client.post(url, files={"file": ("a.zip", b"PK", "application/zip")}).status_code == 400
    assert client.post("/api/projects/999/files", files={"file": ("a.txt", b"x", "text/plain")}).status_code == 404

    listed = client.get(url).json()
    assert [f["filename"] for f in listed] == ["notes.md", "dot.png"]

    assert client.delete(f"/api/files/{listed[0]['id']}").json() == {"status": "deleted"}
    assert [f["filename"] for f in client.get(url).json()] == ["dot.png"]
    assert client.delete(f"/api/files/{listed[0]['id']}").status_code == 404


def test_project_instructions_are_the_system_prompt_fallback(client, scripted_model):
    project = new_project(client, "Tone", instructions="Answer like a pirate.")
    in_project = client.post("/api/conversations", json={"project_id": project["id"]}).json()
    overridden = client.post(
        "/api/conversations",
        json={"project_id": project["id"], "system_prompt": "Answer formally."},
    ).json()

    client.post("/api/chat", json={"message": "Hi", "model": MODEL, "conversation_id": in_project["id"]})
    assert scripted_model.requests[-1]["system"] == "Answer like a pirate."

    client.post("/api/chat", json={"message": "Hi", "model": MODEL, "conversation_id": overridden["id"]})
    assert scripted_model.requests[-1]["system"] == "Answer formally."
