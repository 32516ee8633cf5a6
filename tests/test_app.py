import json

import pytest
from fastapi.testclient import TestClient
from google.api_core import exceptions as google_exceptions

import app as app_module
from app import app, get_dispatcher
from config import get_settings
from firebase_service import SCRAPED_COLLEGES_COLLECTION
from models import ScrapeSummary, Settings
from prompt_dispatcher import PromptDispatcher
from tests.conftest import ScriptedBackend, as_json


@pytest.fixture
def colleges_file(tmp_path):
    path = tmp_path / "colleges.json"
    path.write_text(json.dumps([
        {"id": 1, "name": "COEP Technological University", "ownership": "government", "category": "Engineering",
         "state": "Maharashtra", "city": "Pune", "aliases": ["COEP"]},
        {"id": 2, "name": "Symbiosis Law School", "ownership": "private", "category": "Law",
         "state": "Maharashtra", "city": "Pune", "aliases": ["SLS Pune"]},
        {"id": 3, "name": "Goa College of Engineering", "ownership": "government", "category": "Engineering",
         "state": "Goa", "city": "Ponda"},
    ]))
    return path


@pytest.fixture
def settings(colleges_file):
    return Settings(colleges_json_path=str(colleges_file), rate_limit_requests_per_minute=100)


@pytest.fixture
def backend():
    return ScriptedBackend()


@pytest.fixture
def client(settings, backend, firebase):
    dispatcher = PromptDispatcher(backend, ["gemini-a", "gemini-b"])
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app_module.LAST_REQUESTS_BY_IP.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app_module.LAST_REQUESTS_BY_IP.clear()


def test_root(client):
    assert client.get("/").json()["status"] == "ok"


def test_search_filters_and_paginates(client):
    resp = client.get("/api/colleges/search", params={"state": "Maharashtra", "limit": 1})
    assert resp.status_code == 200
    body = resp.json()
    assert [c["id"] for c in body["colleges"]] == [1]
    assert body["nextCursor"] == 1

    resp = client.get("/api/colleges/search", params={"state": "Maharashtra", "limit": 1, "cursor": 1})
    body = resp.json()
    assert [c["id"] for c in body["colleges"]] == [2]
    assert body["nextCursor"] is None


def test_search_query_matches_aliases(client):
    body = client.get("/api/colleges/search", params={"query": "sls"}).json()
    assert [c["name"] for c in body["colleges"]] == ["Symbiosis Law School"]


@pytest.mark.parametrize(
    "params, field",
    [({"limit": 51}, "limit"), ({"limit": 0}, "limit"), ({"ownership": "public"}, "ownership"), ({"cursor": -3}, "cursor")],
)
def test_search_rejects_invalid_params(client, params, field):
    resp = client.get("/api/colleges/search", params=params)
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Invalid query parameters"
    assert [d["field"] for d in body["details"]] == [field]


def test_search_reports_missing_dataset(client, settings, tmp_path):
    settings.colleges_json_path = str(tmp_path / "missing.json")
    resp = client.get("/api/colleges/search")
    assert resp.status_code == 500


def test_advisor_endpoint_returns_camel_case(client, backend):
    backend.default = as_json({"suggestedStream": "Science", "reasoning": "Loves physics"})
    resp = client.post(
        "/api/advisor/stream-suggestion",
        json={"interests": "physics", "academicPerformance": "A grade"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"suggestedStream": "Science", "reasoning": "Loves physics"}


def test_advisor_validation_error(client):
    resp = client.post("/api/advisor/stream-suggestion", json={"interests": "physics"})
    assert resp.status_code == 422


def test_exhausted_models_map_to_503(client, backend):
    backend.default = google_exceptions.ResourceExhausted("quota exceeded")
    resp = client.post("/api/advisor/career-paths", json={"degreeCourse": "B.Com"})
    assert resp.status_code == 503
    assert "try again later" in resp.json()["detail"]
    assert len(backend.calls) == 2


def test_bad_model_output_maps_to_502(client, backend):
    backend.default = "not json"
    resp = client.post("/api/advisor/nearby-colleges", json={"location": "Pune"})
    assert resp.status_code == 502


def test_fatal_backend_error_maps_to_502(client, backend):
    backend.default = google_exceptions.PermissionDenied("API key not valid")
    resp = client.post("/api/advisor/nearby-colleges", json={"location": "Pune"})
    assert resp.status_code == 502
    assert "API key not valid" in resp.json()["detail"]
    assert len(backend.calls) == 1


def test_unexpected_error_maps_to_500(client, backend):
    backend.default = ValueError("response object has no text")
    resp = client.post("/api/advisor/nearby-colleges", json={"location": "Pune"})
    assert resp.status_code == 500
    assert resp.json()["detail"].startswith("Advisor request failed")


def test_advisor_result_saved_to_history(client, backend, firebase):
    backend.default = as_json({"colleges": [{"name": "Govt College", "location": "Pune"}]})
    resp = client.post("/api/advisor/nearby-colleges", json={"location": "Pune", "userId": "u1"})
    assert resp.status_code == 200

    entries = firebase.get_history("u1", "nearbyCollegesHistory")
    assert len(entries) == 1
    assert entries[0]["inputs"] == {"location": "Pune"}
    assert entries[0]["result"]["colleges"][0]["name"] == "Govt College"


def test_chat_saves_question_and_reply(client, backend, firebase):
    backend.default = as_json({"response": "Consider JEE."})
    resp = client.post(
        "/api/advisor/chat",
        json={"query": "Which exam?", "history": [{"role": "user", "content": "Hi"}], "userId": "u1"},
    )
    assert resp.json() == {"response": "Consider JEE."}

    resp = client.get("/api/users/u1/history/chatHistory")
    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 2
    assert {(e["sender"], e["text"]) for e in body["entries"]} == {("user", "Which exam?"), ("ai", "Consider JEE.")}


def test_history_failure_does_not_fail_the_request(client, backend, monkeypatch, firebase):
    def broken_save(*args, **kwargs):
        raise RuntimeError("firestore down")

    monkeypatch.setattr(firebase, "save_history", broken_save)
    backend.default = as_json({"response": "Hello"})
    resp = client.post("/api/advisor/chat", json={"query": "Hi", "userId": "u1"})
    assert resp.status_code == 200


def test_unknown_history_kind_is_400(client):
    assert client.get("/api/users/u1/history/secrets").status_code == 400


def test_history_with_missing_credentials_is_500(client, monkeypatch):
    def unconfigured():
        raise ValueError("No Firebase credentials found.")

    monkeypatch.setattr("firebase_service.get_firebase_service", unconfigured)
    resp = client.get("/api/users/u1/history/chatHistory")
    assert resp.status_code == 500
    assert "No Firebase credentials found" in resp.json()["detail"]


def test_rate_limit(client, settings, backend):
    settings.rate_limit_requests_per_minute = 1
    backend.default = as_json({"response": "Hello"})
    assert client.post("/api/advisor/chat", json={"query": "Hi"}).status_code == 200
    assert client.post("/api/advisor/chat", json={"query": "Hi"}).status_code == 429


def test_scrape_success_returns_summary(client, monkeypatch):
    async def fake_pipeline(settings, store):
        return ScrapeSummary(total_scraped=20, total_inserted=18, total_skipped=2)

    monkeypatch.setattr(app_module, "run_pipeline_from_settings", fake_pipeline)
    resp = client.get("/api/scrape-colleges")
    assert resp.status_code == 200
    assert resp.json() == {"totalScraped": 20, "totalInserted": 18, "totalSkipped": 2, "errors": []}


def test_scrape_fetch_failure_is_still_200(client, monkeypatch):
    async def fake_pipeline(settings, store):
        return ScrapeSummary(total_scraped=20, total_inserted=20, errors=["Failed to fetch page 2. Stopping process."])

    monkeypatch.setattr(app_module, "run_pipeline_from_settings", fake_pipeline)
    resp = client.get("/api/scrape-colleges")
    assert resp.status_code == 200
    assert resp.json()["errors"] == ["Failed to fetch page 2. Stopping process."]


def test_scrape_aborted_run_is_500(client, monkeypatch):
    async def fake_pipeline(settings, store):
        return ScrapeSummary(total_scraped=3, total_inserted=2, errors=["boom"], aborted=True)

    monkeypatch.setattr(app_module, "run_pipeline_from_settings", fake_pipeline)
    resp = client.get("/api/scrape-colleges")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Internal Server Error"
    assert body["details"]["errors"] == ["boom"]


def test_scrape_runs_pipeline_against_store(client, settings, monkeypatch, fake_db):
    html = (
        '<div class="clg-tpl-parent-card"><h3 class="college_name">COEP</h3>'
        '<span itemprop="addressLocality">Pune, Maharashtra</span></div>'
    )

    async def fake_fetch_page(url, **kwargs):
        return html if url.endswith("page=1") else ""

    monkeypatch.setattr("college_scraper.fetch_page", fake_fetch_page)
    monkeypatch.setattr(settings, "scrape_page_delay_seconds", 0.0)
    resp = client.get("/api/scrape-colleges")
    assert resp.status_code == 200
    assert resp.json()["totalInserted"] == 1
    assert fake_db.ids(SCRAPED_COLLEGES_COLLECTION) == ["coep-pune"]


def test_scrape_rejects_other_methods(client):
    assert client.post("/api/scrape-colleges").status_code == 405
