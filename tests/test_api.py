# =============================================================================
# API Tests — HTTP Surface via TestClient
# =============================================================================
#
# Runs the real FastAPI app against build_test_services(): aiosqlite store,
# local blob store, in-process jobs, fake model adapters. Jobs run on the
# TestClient's event loop between requests, so tests poll document status
# the way a real client does.
#
# Test groups:
#   1. Health and upload validation
#   2. Document processing, listing and deletion
#   3. Analysis and re-analysis
#   4. Streaming Q&A
#   5. Reports and signed downloads
#   6. Authentication and ownership
# =============================================================================

from __future__ import annotations

import json
import time
from datetime import UTC, datetime, timedelta
from urllib.parse import urlparse

import pytest
from fakes import FakeLLM, _run, build_test_services
from fastapi.testclient import TestClient

from app.main import create_app
from app.services.auth import generate_api_key

CONTRACT = (
    b"SERVICES AGREEMENT\nThe Contractor shall raise GST invoices and comply "
    b"with the GCC.\fPayment within 30 days."
)


@pytest.fixture
def services(tmp_path):
    return build_test_services(tmp_path)


@pytest.fixture
def client(services):
    with TestClient(create_app(services=services)) as test_client:
        yield test_client


def upload(client, data=CONTRACT, name="agreement.txt", headers=None):
    return client.post(
        "/api/upload", files={"file": (name, data, "text/plain")}, headers=headers or {},
    )


def wait_until_settled(client, document_id, headers=None, timeout=5.0):
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/api/documents/{document_id}", headers=headers or {}).json()
        if body["status"] in ("completed", "error"):
            return body
        if time.monotonic() > deadline:
            raise AssertionError(f"document stuck in {body['status']}")
        time.sleep(0.02)


def upload_and_complete(client, headers=None):
    response = upload(client, headers=headers)
    assert response.status_code == 200
    return wait_until_settled(client, response.json()["documentId"], headers=headers)


def sse_events(response) -> list[dict]:
    return [
        json.loads(line[len("data: "):])
        for line in response.text.splitlines()
        if line.startswith("data: ")
    ]


# ---------------------------------------------------------------------------
# 1. Health and upload validation
# ---------------------------------------------------------------------------


class TestHealthAndUpload:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_upload_returns_processing(self, client):
        response = upload(client)
        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "processing"
        assert body["documentId"]
        assert "Processing started" in body["message"]

    def test_missing_file_is_400(self, client):
        response = client.post("/api/upload")
        assert response.status_code == 400
        assert response.json()["detail"] == "No file provided"

    def test_empty_file_is_400(self, client):
        assert upload(client, data=b"").status_code == 400

    def test_oversized_file_is_400(self, client, services):
        services.settings.max_upload_bytes = 10
        services.lifecycle._max_upload_bytes = 10
        response = upload(client, data=b"x" * 11)
        assert response.status_code == 400
        assert "exceeds" in response.json()["detail"]


# ---------------------------------------------------------------------------
# 2. Documents
# ---------------------------------------------------------------------------


class TestDocuments:

    def test_upload_is_processed_to_completion(self, client):
        document = upload_and_complete(client)
        assert document["status"] == "completed"
        assert document["language"] == "en"
        assert document["analysisId"]
        assert document["errorMessage"] is None

    def test_list_documents(self, client):
        document = upload_and_complete(client)
        listed = client.get("/api/documents").json()["documents"]
        assert [d["id"] for d in listed] == [document["id"]]

    def test_unknown_document_is_404(self, client):
        response = client.get("/api/documents/does-not-exist")
        assert response.status_code == 404
        assert "detail" in response.json()

    def test_delete_document(self, client):
        document = upload_and_complete(client)
        response = client.delete(f"/api/documents/{document['id']}")
        assert response.status_code == 200
        assert response.json()["message"] == "Document deleted successfully"
        assert client.get(f"/api/documents/{document['id']}").status_code == 404


# ---------------------------------------------------------------------------
# 3. Analysis
# ---------------------------------------------------------------------------


class TestAnalysis:

    def test_get_analysis_is_camel_case(self, client):
        document = upload_and_complete(client)
        response = client.get(f"/api/analysis/{document['id']}")
        body = response.json()

        assert response.status_code == 200
        assert body["id"] == document["analysisId"]
        # 100 - 15 - 8 - 3 for one risk of each level
        assert body["indiaLawScore"] == 74
        assert body["riskSummary"] == {"high": 1, "medium": 1, "low": 1}
        assert {c["category"] for c in body["categoryScores"]} == {
            "GST", "Labor", "Contract Validity", "Data Protection",
        }
        assert body["recommendations"][0]["clauseTitle"] == "GST Compliance"

    def test_analysis_of_unknown_document_is_404(self, client):
        assert client.get("/api/analysis/missing").status_code == 404

    def test_reanalysis_accepted_and_moves_analysis(self, client):
        document = upload_and_complete(client)
        response = client.post(f"/api/analysis/{document['id']}/analyze")
        assert response.status_code == 202
        assert response.json()["documentId"] == document["id"]

        deadline = time.monotonic() + 5
        while True:
            current = client.get(f"/api/documents/{document['id']}").json()
            if current["analysisId"] != document["analysisId"]:
                break
            assert time.monotonic() < deadline, "re-analysis never finished"
            time.sleep(0.02)
        assert current["status"] == "completed"


# ---------------------------------------------------------------------------
# 4. Q&A
# ---------------------------------------------------------------------------


class TestQuestionAnswering:

    def test_ask_streams_content_then_complete(self, client):
        document = upload_and_complete(client)
        response = client.post(
            "/api/qa/ask",
            json={"documentId": document["id"], "question": "Is GST covered?"},
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"

        events = sse_events(response)
        assert [e["type"] for e in events] == ["content", "content", "content", "complete"]
        assert events[-1]["answer"] == "The contract is compliant."

    def test_session_records_the_exchange(self, client):
        document = upload_and_complete(client)
        client.post("/api/qa/ask", json={"documentId": document["id"], "question": "Is GST covered?"})

        session = client.get(f"/api/qa/session/{document['id']}").json()
        assert [m["role"] for m in session["messages"]] == ["user", "assistant"]
        assert session["messages"][1]["content"] == "The contract is compliant."

    def test_missing_question_is_400(self, client):
        document = upload_and_complete(client)
        response = client.post("/api/qa/ask", json={"documentId": document["id"]})
        assert response.status_code == 400
        assert "question" in response.json()["detail"]

    def test_unknown_document_is_404_not_a_stream(self, client):
        response = client.post("/api/qa/ask", json={"documentId": "nope", "question": "Hi?"})
        assert response.status_code == 404

    def test_model_failure_becomes_error_event(self, tmp_path):
        from app.exceptions import ModelError

        services = build_test_services(
            tmp_path, llm=FakeLLM(stream_error=ModelError("overloaded"), fail_after=1),
        )
        with TestClient(create_app(services=services)) as client:
            document = upload_and_complete(client)
            response = client.post(
                "/api/qa/ask", json={"documentId": document["id"], "question": "Is GST covered?"},
            )
            events = sse_events(response)
            assert events[0]["type"] == "content"
            assert events[-1]["type"] == "error"
            assert client.get(f"/api/qa/session/{document['id']}").json()["messages"] == []


# ---------------------------------------------------------------------------
# 5. Reports
# ---------------------------------------------------------------------------


class TestReports:

    def test_report_url_downloads_pdf(self, client):
        document = upload_and_complete(client)
        response = client.get(f"/api/report/{document['analysisId']}/pdf")
        body = response.json()
        assert response.status_code == 200
        assert body["reportPath"] == f"users/alice/reports/report-{document['analysisId']}.pdf"

        parsed = urlparse(body["reportUrl"])
        download = client.get(f"{parsed.path}?{parsed.query}")
        assert download.status_code == 200
        assert download.content.startswith(b"%PDF")

    def test_tampered_signature_is_403(self, client):
        document = upload_and_complete(client)
        body = client.get(f"/api/report/{document['analysisId']}/pdf").json()
        parsed = urlparse(body["reportUrl"])
        response = client.get(f"{parsed.path}?{parsed.query[:-4]}beef")
        assert response.status_code == 403

    def test_unknown_analysis_is_404(self, client):
        assert client.get("/api/report/missing/pdf").status_code == 404


# ---------------------------------------------------------------------------
# 6. Authentication and ownership
# ---------------------------------------------------------------------------


def _issue_key(services, user_id, expires_at=None):
    raw_key, prefix, key_hash = generate_api_key()
    _run(services.store.create_api_key(
        name=f"{user_id}-key", user_id=user_id, key_prefix=prefix,
        key_hash=key_hash, expires_at=expires_at,
    ))
    return {"Authorization": f"Bearer {raw_key}"}


class TestAuthentication:

    @pytest.fixture
    def secured(self, tmp_path):
        services = build_test_services(tmp_path, auth_enabled=True)
        with TestClient(create_app(services=services)) as test_client:
            yield test_client, services

    def test_missing_token_is_401(self, secured):
        client, _ = secured
        response = client.get("/api/documents")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_invalid_token_is_401(self, secured):
        client, _ = secured
        response = client.get("/api/documents", headers={"Authorization": "Bearer sk-nope"})
        assert response.status_code == 401

    def test_expired_token_is_401(self, secured):
        client, services = secured
        headers = _issue_key(services, "alice", expires_at=datetime.now(UTC) - timedelta(days=1))
        assert client.get("/api/documents", headers=headers).status_code == 401

    def test_other_owner_gets_403(self, secured):
        client, services = secured
        alice, bob = _issue_key(services, "alice"), _issue_key(services, "bob")

        document = upload_and_complete(client, headers=alice)
        assert client.get(f"/api/documents/{document['id']}", headers=bob).status_code == 403
        assert client.get(f"/api/analysis/{document['id']}", headers=bob).status_code == 403
        assert client.delete(f"/api/documents/{document['id']}", headers=bob).status_code == 403
        assert client.get("/api/documents", headers=bob).json()["documents"] == []

    def test_files_need_no_token(self, secured):
        client, services = secured
        alice = _issue_key(services, "alice")
        document = upload_and_complete(client, headers=alice)
        body = client.get(f"/api/report/{document['analysisId']}/pdf", headers=alice).json()
        parsed = urlparse(body["reportUrl"])
        assert client.get(f"{parsed.path}?{parsed.query}").status_code == 200
