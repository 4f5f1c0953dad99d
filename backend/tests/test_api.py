import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from patchlib_api import patchlib_router, get_db


@pytest.fixture
def client(db):
    app = FastAPI()
    app.include_router(patchlib_router)
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as test_client:
        yield test_client


def _import(client, tree):
    response = client.post("/api/patchlib/import", json={"path": str(tree.root)})
    assert response.status_code == 200, response.text
    return response.json()


def test_import_and_browse(client, make_library):
    tree = make_library()
    body = _import(client, tree)
    assert body["success"] is True
    assert body["imported"] == {
        "libraries": 1,
        "banks": 32,
        "patches": 256,
        "sequences": 256,
        "reused_sequences": 0,
    }

    libraries = client.get("/api/patchlib/libraries").json()
    assert [lib["name"] for lib in libraries] == ["Factory"]
    library_id = libraries[0]["id"]
    assert library_id == body["library_id"]

    banks = client.get(f"/api/patchlib/libraries/{library_id}/banks").json()
    assert len(banks) == 16
    assert all(bank["kind"] == "patch" for bank in banks)

    patches = client.get(
        f"/api/patchlib/libraries/{library_id}/banks/{banks[0]['id']}/patches"
    ).json()
    assert [p["patch_number"] for p in patches] == list(range(1, 17))
    assert patches[0]["name"] == "Sound 01-01"


def test_reimport_conflicts(client, make_library):
    tree = make_library()
    _import(client, tree)
    response = client.post("/api/patchlib/import", json={"path": str(tree.root)})
    assert response.status_code == 409
    assert response.json()["detail"] == "Library already exists"


def test_broken_import_is_bad_request(client, make_library):
    tree = make_library()
    tree.sequence_file(1, 1).unlink()
    response = client.post("/api/patchlib/import", json={"path": str(tree.root)})
    assert response.status_code == 400
    assert "Missing required .mmseq file" in response.json()["detail"]
    assert client.get("/api/patchlib/libraries").json() == []


def test_bank_from_other_library_is_not_found(client, make_library):
    first = _import(client, make_library("First", salt="a"))
    second = _import(client, make_library("Second", salt="b"))
    banks = client.get(f"/api/patchlib/libraries/{second['library_id']}/banks").json()

    response = client.get(
        f"/api/patchlib/libraries/{first['library_id']}/banks/{banks[0]['id']}/patches"
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Bank not found in the specified library"


def test_unknown_library_banks(client):
    assert client.get("/api/patchlib/libraries/99/banks").status_code == 404


def test_update_patch(client, make_library):
    body = _import(client, make_library())
    banks = client.get(f"/api/patchlib/libraries/{body['library_id']}/banks").json()
    patch = client.get(
        f"/api/patchlib/libraries/{body['library_id']}/banks/{banks[0]['id']}/patches"
    ).json()[0]

    response = client.patch(
        f"/api/patchlib/patches/{patch['id']}",
        json={"favorited": True, "tags": ["warm", "warm", "mono"]},
    )
    assert response.status_code == 200
    assert response.json()["favorited"] is True
    assert response.json()["tags"] == ["warm", "mono"]

    assert client.patch("/api/patchlib/patches/99999", json={"favorited": True}).status_code == 404


def test_export_and_delete(client, make_library, tmp_path):
    body = _import(client, make_library())
    target = tmp_path / "exports"

    response = client.post(
        "/api/patchlib/export",
        json={"library_id": body["library_id"], "target_dir": str(target)},
    )
    assert response.status_code == 200
    assert response.json()["export_path"] == str(target / "Factory")
    assert (target / "Factory" / "library" / "sequences" / "bank16" / "seq16").is_dir()

    assert client.delete(f"/api/patchlib/libraries/{body['library_id']}").json() == {"success": True}
    assert client.delete(f"/api/patchlib/libraries/{body['library_id']}").status_code == 404
    assert client.post("/api/patchlib/export", json={"library_id": body["library_id"]}).status_code == 404


def test_export_defaults_to_configured_dir(client, make_library, tmp_path, monkeypatch):
    monkeypatch.setenv("PATCHLIB_EXPORT_DIR", str(tmp_path / "configured"))
    body = _import(client, make_library())

    response = client.post("/api/patchlib/export", json={"library_id": body["library_id"]})
    assert response.status_code == 200
    assert (tmp_path / "configured" / "Factory" / "library" / "bank01").is_dir()


def test_validate_endpoint(client, make_library, tmp_path):
    tree = make_library()
    body = client.post("/api/patchlib/validate", json={"path": str(tree.root)}).json()
    assert body["is_valid"] is True
    assert body["details"]["bank_count"] == 16
    assert body["details"]["sequence_count"] == 256

    missing = client.post("/api/patchlib/validate", json={"path": str(tmp_path / "nope")}).json()
    assert missing["is_valid"] is False
    assert missing["errors"]


def test_info(client, make_library):
    _import(client, make_library())
    stats = client.get("/api/patchlib/info").json()
    assert stats["libraries"] == 1
    assert stats["banks"] == {"patch": 16, "sequence": 16}
    assert stats["patches"]["total"] == 256


def test_server_health(tmp_path, monkeypatch):
    monkeypatch.setenv("PATCHLIB_DB_PATH", str(tmp_path / "server.db"))
    import server

    with TestClient(server.app) as test_client:
        assert test_client.get("/api/health").json() == {"status": "healthy"}
        assert test_client.get("/api/patchlib/libraries").json() == []
    assert (tmp_path / "server.db").exists()
