import pytest
from fastapi.testclient import TestClient

from api.config.database import get_db
from api.endpoints.deps import get_ai_settings_service, get_application_service
from api.main import app
from api.models import OutboxEvent
from api.services.ai_settings_service import AISettingsService
from api.services.transitions import ApplicationStatus as S

RECRUITER = {"X-User-Id": "recruiter-7"}
CANDIDATE = {"X-User-Id": "cand-1"}


@pytest.fixture
def client(session_factory, application_service):
    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_application_service] = lambda: application_service
    app.dependency_overrides[get_ai_settings_service] = lambda: AISettingsService(session_factory)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_root_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_submit_and_read_back(client):
    response = client.post(
        "/api/v1/applications",
        json={"jobPostingId": 1, "resumeDocumentId": 10, "candidateMessage": "Hello"},
        headers=CANDIDATE,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "SUBMITTED"
    assert body["candidateId"] == "cand-1"
    application_id = body["id"]

    history = client.get(f"/api/v1/applications/{application_id}/history").json()
    assert [entry["toStatus"] for entry in history] == ["SUBMITTED"]

    listing = client.get("/api/v1/applications", params={"candidateId": "cand-1"}).json()
    assert listing["meta"]["total"] == 1
    assert listing["data"][0]["reference"] == body["reference"]


def test_submit_requires_caller_identity(client):
    response = client.post("/api/v1/applications", json={"jobPostingId": 1, "resumeDocumentId": 10})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


def test_duplicate_submission_is_422(client):
    payload = {"jobPostingId": 1, "resumeDocumentId": 10}
    client.post("/api/v1/applications", json=payload, headers=CANDIDATE)

    response = client.post("/api/v1/applications", json=payload, headers=CANDIDATE)

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_illegal_status_change_is_409(client, make_application):
    created = make_application(S.REJECTED)

    response = client.put(
        f"/api/v1/applications/{created.id}/status",
        json={"status": "SHORTLISTED", "reason": "changed my mind"},
        headers=RECRUITER,
    )

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "INVALID_TRANSITION"
    assert error["details"] == {"from": "REJECTED", "to": "SHORTLISTED"}
    assert client.get(f"/api/v1/applications/{created.id}").json()["status"] == "REJECTED"


def test_status_change_and_interview_flow(client, make_application):
    created = make_application(S.UNDER_REVIEW)

    response = client.put(
        f"/api/v1/applications/{created.id}/status",
        json={"status": "SHORTLISTED"},
        headers=RECRUITER,
    )
    assert response.json()["isShortlisted"] is True

    response = client.post(f"/api/v1/applications/{created.id}/interview", headers=RECRUITER)
    assert response.json()["status"] == "INTERVIEW_REQUESTED"

    response = client.put(
        f"/api/v1/applications/{created.id}/interview-status",
        json={"interviewId": 3, "status": "SCHEDULED"},
    )
    assert response.json()["status"] == "INTERVIEW_SCHEDULED"


def test_unknown_application_is_404(client):
    response = client.get("/api/v1/applications/4040")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_ai_settings_crud_and_stats(client):
    response = client.post(
        "/api/v1/ai-settings",
        json={"department": "Engineering", "autoAcceptThreshold": 80, "autoRejectThreshold": 40},
        headers=RECRUITER,
    )
    assert response.status_code == 201
    settings_id = response.json()["id"]
    assert response.json()["reviewThreshold"] == 60

    response = client.put(
        f"/api/v1/ai-settings/{settings_id}",
        json={"autoRejectThreshold": 90},
        headers=RECRUITER,
    )
    assert response.status_code == 422

    stats = client.get("/api/v1/ai-settings/department/Engineering/stats").json()
    assert stats["settingsExist"] is True
    assert stats["totalEvaluations"] == 0


def test_invalid_threshold_pair_is_422(client):
    response = client.post(
        "/api/v1/ai-settings",
        json={"department": "Sales", "autoAcceptThreshold": 40, "autoRejectThreshold": 40},
        headers=RECRUITER,
    )
    assert response.status_code == 422


def test_outbox_status_and_listing(client):
    client.post(
        "/api/v1/applications",
        json={"jobPostingId": 1, "resumeDocumentId": 10},
        headers=CANDIDATE,
    )

    status = client.get("/api/v1/outbox").json()
    assert status == {"pending": 2, "delivered": 0, "dead": 0}

    events = client.get("/api/v1/outbox/events", params={"state": "pending"}).json()
    assert {event["eventType"] for event in events} == {"ApplicationCreated", "EvaluationRequested"}

    response = client.post(f"/api/v1/outbox/events/{events[0]['id']}/retry", headers=RECRUITER)
    assert response.status_code == 422


def test_detailed_health_reports_dead_letters(client, session_factory):
    body = client.get("/api/v1/health/detailed").json()
    assert body["status"] == "healthy"
    assert body["outbox"] == {"pending": 0, "delivered": 0, "dead": 0}

    with session_factory() as session:
        session.add(
            OutboxEvent(
                aggregate_type="application",
                aggregate_id=1,
                event_type="ApplicationCreated",
                payload="{}",
                processed=True,
                retry_count=5,
                error_message="broker unreachable",
            )
        )
        session.commit()

    body = client.get("/api/v1/health/detailed").json()
    assert body["status"] == "degraded"
    assert body["aiEvaluation"]["defaultAcceptThreshold"] == 85
    assert client.get("/api/v1/health/ready").json() == {"ready": True}
