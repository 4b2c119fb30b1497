"""
Integration tests for the HTTP API (in-process, local storage).
"""

import hashlib
from pathlib import Path

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from keyword_search.main import create_app

pytestmark = pytest.mark.integration

PARIS = b"Paris is the capital of France."
ROME = b"Rome is the capital of Italy."


def _create_from_files(client, files):
    return client.post(
        "/v1/index/create",
        files=[("files", (name, content, "text/plain")) for name, content in files],
    )


class TestServiceEndpoints:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["indexes"] == 0
        assert body["builds_in_flight"] == 0


class TestCreateIndex:
    """POST /v1/index/create"""

    def test_multipart_mixed_results(self, client):
        response = _create_from_files(client, [
            ("paris.txt", PARIS),
            ("empty.txt", b"   "),
            ("rome.md", ROME),
            ("image.png", b"\x89PNG\r\n"),
        ])

        assert response.status_code == 200
        body = response.json()
        assert [(r["filename"], r["status"]) for r in body["results"]] == [
            ("paris.txt", "indexed"),
            ("empty.txt", "error"),
            ("rome.md", "indexed"),
            ("image.png", "error"),
        ]
        assert body["results"][0]["error"] is None
        assert body["results"][1]["error"]
        assert body["index_name"].startswith("index-")
        assert body["download_url"] == (
            f"http://localhost:9069/v1/index/download/{body['index_name']}"
        )

    def test_multipart_with_name_field(self, client):
        response = client.post(
            "/v1/index/create",
            files=[("files", ("paris.txt", PARIS, "text/plain"))],
            data={"name": "capitals"},
        )
        assert response.status_code == 200
        assert response.json()["index_name"] == "capitals"

    def test_json_chunks(self, client):
        response = client.post("/v1/index/create", json={
            "documents": [
                {"title": "paris", "content": PARIS.decode()},
                {"content": ROME.decode()},
            ],
        })

        assert response.status_code == 200
        body = response.json()
        assert [r["filename"] for r in body["results"]] == ["paris", "Unknown"]
        assert all(r["status"] == "indexed" for r in body["results"])

    def test_all_items_failed(self, client):
        response = _create_from_files(client, [("a.txt", b""), ("b.pdf", b"%PDF-1.4")])

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "empty_index"
        assert body["index_name"] is None
        assert body["download_url"] is None
        assert [r["status"] for r in body["results"]] == ["error", "error"]
        assert client.get("/health").json()["indexes"] == 0

    def test_duplicate_requested_name(self, client):
        payload = {"documents": [{"content": "some text"}], "name": "dup"}
        assert client.post("/v1/index/create", json=payload).status_code == 200

        response = client.post("/v1/index/create", json=payload)
        assert response.status_code == 409
        assert response.json()["error"] == "index_already_exists"

    def test_invalid_requested_name(self, client):
        response = client.post(
            "/v1/index/create",
            json={"documents": [{"content": "text"}], "name": "../escape"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_query"

    def test_empty_requested_name_generates_one(self, client):
        """An empty JSON name behaves like an omitted one"""
        response = client.post(
            "/v1/index/create", json={"documents": [{"content": "some text"}], "name": ""}
        )
        assert response.status_code == 200
        assert response.json()["index_name"].startswith("index-")

    def test_unsupported_content_type(self, client):
        response = client.post(
            "/v1/index/create", content=b"raw text", headers={"content-type": "text/plain"}
        )
        assert response.status_code == 415

    def test_malformed_json(self, client):
        response = client.post(
            "/v1/index/create",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT == 422
        assert "Failed to parse JSON request" in response.json()["detail"]

    def test_json_schema_violation(self, client):
        response = client.post("/v1/index/create", json={"docs": []})
        assert response.status_code == 422


class TestSearch:
    """POST /v1/search"""

    @pytest.fixture
    def index_name(self, client):
        response = _create_from_files(client, [("paris.txt", PARIS), ("rome.txt", ROME)])
        return response.json()["index_name"]

    def test_ranking(self, client, index_name):
        response = client.post(
            "/v1/search", json={"query": "Paris capital", "top_k": 5, "index": index_name}
        )

        assert response.status_code == 200
        hits = response.json()["hits"]
        assert [h["title"] for h in hits] == ["paris.txt", "rome.txt"]
        assert hits[0]["content"] == PARIS.decode()
        assert hits[0]["score"] == pytest.approx(0.875469, abs=1e-6)
        assert hits[0]["score"] > hits[1]["score"]

    def test_default_top_k(self, client, index_name):
        response = client.post("/v1/search", json={"query": "capital", "index": index_name})
        assert response.status_code == 200
        assert len(response.json()["hits"]) == 2

    def test_top_k_zero(self, client, index_name):
        response = client.post(
            "/v1/search", json={"query": "capital", "top_k": 0, "index": index_name}
        )
        assert response.status_code == 200
        assert response.json()["hits"] == []

    def test_empty_query(self, client, index_name):
        response = client.post("/v1/search", json={"query": "", "index": index_name})
        assert response.status_code == 200
        assert response.json()["hits"] == []

    def test_negative_top_k(self, client, index_name):
        response = client.post(
            "/v1/search", json={"query": "capital", "top_k": -1, "index": index_name}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_query"

    def test_top_k_above_max_is_clamped(self, client, settings, index_name):
        """A large top_k is capped at max_top_k rather than rejected"""
        assert 1000 > settings.max_top_k
        response = client.post(
            "/v1/search", json={"query": "capital", "top_k": 1000, "index": index_name}
        )
        assert response.status_code == 200
        assert len(response.json()["hits"]) == 2

    def test_unknown_index(self, client):
        response = client.post("/v1/search", json={"query": "capital", "index": "index-missing"})
        assert response.status_code == 404
        assert response.json()["error"] == "index_not_found"

    def test_unknown_index_with_top_k_zero(self, client):
        response = client.post(
            "/v1/search", json={"query": "capital", "top_k": 0, "index": "index-missing"}
        )
        assert response.status_code == 404
        assert response.json()["error"] == "index_not_found"

    def test_missing_index_field(self, client):
        response = client.post("/v1/search", json={"query": "capital"})
        assert response.status_code == 422


class TestDownload:
    """GET /v1/index/download/{index_name}"""

    def test_download_matches_stored_artifact(self, client, settings, download_path):
        body = _create_from_files(client, [("paris.txt", PARIS), ("rome.txt", ROME)]).json()

        response = client.get(download_path(body["download_url"]))

        assert response.status_code == 200
        stored = (Path(settings.storage_dir) / f"{body['index_name']}.json").read_bytes()
        assert response.content == stored
        assert response.headers["content-type"].startswith("application/json")
        assert f'filename="{body["index_name"]}.json"' in response.headers["content-disposition"]
        assert response.headers["etag"] == f'"{hashlib.sha256(stored).hexdigest()}"'

    def test_repeated_downloads_identical(self, client, download_path):
        body = _create_from_files(client, [("paris.txt", PARIS)]).json()
        first = client.get(download_path(body["download_url"])).content
        second = client.get(download_path(body["download_url"])).content
        assert first == second

    def test_unknown_index(self, client):
        response = client.get("/v1/index/download/index-unknown")
        assert response.status_code == 404
        assert response.json()["error"] == "index_not_found"

    def test_invalid_name(self, client):
        response = client.get("/v1/index/download/..%2F..%2Fetc%2Fpasswd")
        assert response.status_code == 404


class TestRestart:
    """Indexes survive a restart through their artifacts"""

    def test_reload_on_startup(self, settings):
        with TestClient(create_app(settings)) as first:
            name = _create_from_files(first, [("paris.txt", PARIS)]).json()["index_name"]

        with TestClient(create_app(settings)) as second:
            response = second.post("/v1/search", json={"query": "Paris", "index": name})
            assert response.status_code == 200
            assert response.json()["hits"][0]["title"] == "paris.txt"

    def test_reload_disabled(self, settings):
        with TestClient(create_app(settings)) as first:
            name = _create_from_files(first, [("paris.txt", PARIS)]).json()["index_name"]

        settings.reload_on_startup = False
        with TestClient(create_app(settings)) as second:
            response = second.post("/v1/search", json={"query": "Paris", "index": name})
            assert response.status_code == 404
