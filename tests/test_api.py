import httpx
import pytest
from fastapi.testclient import TestClient

from main import WorkflowManager, app, manager

LETTER = "Dear hiring manager,\n\nI would like to apply.\n"


@pytest.fixture
def collaborators(make_client, use_collaborators, resume_payload, job_payload, scoring_payload):
    """Answer every collaborator path; tests tweak `answers` to inject failures."""
    answers = {
        "/parse": httpx.Response(200, json=resume_payload),
        "/vacancy": httpx.Response(200, json=job_payload),
        "/letter": httpx.Response(200, json={"letter_text": LETTER}),
        "/score": httpx.Response(200, json=scoring_payload),
    }
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return answers[request.url.path]

    use_collaborators(make_client(handler))
    return answers, calls


def upload(test_client, content=b"%PDF-1.4 resume", filename="cv.pdf", content_type="application/pdf"):
    return test_client.post("/workflow/resume", files={"file": (filename, content, content_type)})


def walk_to_final(test_client):
    """Drive the whole workflow over HTTP and return the last state."""
    test_client.post("/workflow/start")
    assert upload(test_client).status_code == 200
    test_client.post("/workflow/next")
    assert test_client.post("/workflow/job", json={"vacancy_url": "https://hh.ru/vacancy/123"}).status_code == 200
    test_client.post("/workflow/next")
    assert test_client.post("/workflow/letter", json={"letter_style": "formal"}).status_code == 200
    test_client.post("/workflow/next")
    assert test_client.post("/workflow/scoring").status_code == 200
    response = test_client.post("/workflow/next")
    assert response.status_code == 200
    return response.json()


def test_health():
    with TestClient(app) as client:
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_workflow_requires_bearer_token(override_get_db):
    client = TestClient(app)
    response = client.get("/workflow")

    assert response.status_code == 401
    assert response.json()["error"] == "AUTHORIZATION_ERROR"
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_new_session_starts_on_dashboard(test_client):
    response = test_client.get("/workflow")

    assert response.status_code == 200
    body = response.json()
    assert body["current_step"] == "dashboard"
    assert body["can_proceed"] is False
    assert body["view"] == {"step": "dashboard"}


def test_full_flow_then_save(test_client, collaborators):
    """
    Arrange: collaborators answer every call.
    Act: walk every step over HTTP and save.
    Assert: the generation is listed and the workflow is back on the dashboard.
    """
    _, calls = collaborators

    state = walk_to_final(test_client)

    assert state["current_step"] == "final"
    assert state["cover_letter"]["text"] == LETTER
    assert state["scoring"]["scoring_result"]["total_score"] == 78
    assert calls == ["/parse", "/vacancy", "/letter", "/score"]

    saved = test_client.post("/workflow/save", json={"title": "Globex application"})
    assert saved.status_code == 200
    generation_id = saved.json()["id"]

    assert "user-123" not in manager.workflows
    assert test_client.get("/workflow").json()["current_step"] == "dashboard"
    listed = test_client.get("/generations").json()
    assert any(item["id"] == generation_id and item["title"] == "Globex application" for item in listed)

    detail = test_client.get(f"/generations/{generation_id}").json()
    assert detail["cover_letter_text"] == LETTER
    assert detail["overall_score"] == 78


def test_reopen_saved_generation(test_client, collaborators):
    walk_to_final(test_client)
    generation_id = test_client.post("/workflow/save").json()["id"]
    test_client.post("/workflow/start")

    response = test_client.post(f"/workflow/open/{generation_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["current_step"] == "final"
    assert body["job_data"]["company_name"] == "Globex"
    assert body["cover_letter"]["text"] == LETTER


def test_scoring_text_is_plain_text(test_client, collaborators):
    walk_to_final(test_client)

    response = test_client.get("/workflow/scoring/text")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "5. Total: 78%" in response.text


def test_scoring_text_without_scoring(test_client):
    response = test_client.get("/workflow/scoring/text")
    assert response.status_code == 409
    assert response.json()["error"] == "WORKFLOW_ERROR"


def test_next_is_rejected_before_step_completes(test_client):
    test_client.post("/workflow/start")

    response = test_client.post("/workflow/next")

    assert response.status_code == 409
    assert response.json()["details"]["step"] == "upload"


def test_next_is_rejected_while_letter_is_being_edited(test_client, collaborators):
    test_client.post("/workflow/start")
    upload(test_client)
    test_client.post("/workflow/next")
    test_client.post("/workflow/job", json={"vacancy_url": "https://hh.ru/vacancy/123"})
    test_client.post("/workflow/next")
    test_client.post("/workflow/letter", json={})

    editing = test_client.put("/workflow/letter/editing", json={"is_editing": True, "has_unsaved_changes": True})
    assert editing.json()["can_proceed"] is False
    assert test_client.post("/workflow/next").status_code == 409

    saved = test_client.put("/workflow/letter", json={"text": "Edited letter"})
    assert saved.json()["can_proceed"] is True
    assert saved.json()["cover_letter"]["text"] == "Edited letter"
    assert test_client.post("/workflow/next").json()["current_step"] == "scoring"


def test_invalid_upload_is_rejected_without_parsing(test_client, collaborators):
    _, calls = collaborators
    test_client.post("/workflow/start")

    response = upload(test_client, filename="cv.exe", content_type="application/octet-stream")

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"
    assert calls == []


def test_parser_timeout_maps_to_504(test_client, make_client, use_collaborators):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    use_collaborators(make_client(handler))
    test_client.post("/workflow/start")

    response = upload(test_client)

    assert response.status_code == 504
    assert response.json()["error"] == "COLLABORATOR_TIMEOUT"
    assert test_client.get("/workflow").json()["completed"]["upload"] is False


def test_job_extraction_failure_degrades(test_client, collaborators):
    answers, _ = collaborators
    answers["/vacancy"] = httpx.Response(500, json={"error": "Scraper crashed"})

    response = test_client.post("/workflow/job", json={"vacancy_url": "https://djinni.co/jobs/1"})

    assert response.status_code == 200
    body = response.json()
    assert body["degraded"] is True
    assert body["error"] == "Scraper crashed"
    assert body["job_data"]["job_title"] == ""
    # The blank job can be filled in by hand
    edited = test_client.put("/workflow/job", json={"job_title": "QA Engineer", "company_name": "Umbrella"})
    assert edited.json()["job_data"]["job_title"] == "QA Engineer"


def test_invalid_vacancy_url_is_400(test_client, collaborators):
    _, calls = collaborators
    response = test_client.post("/workflow/job", json={"vacancy_url": "https://example.com/job/1"})

    assert response.status_code == 400
    assert response.json()["details"]["field"] == "vacancy_url"
    assert calls == []


def test_scoring_shape_error_is_502(test_client, collaborators, scoring_payload):
    answers, _ = collaborators
    del scoring_payload["scoring_result"]["recruiter_recommendation"]
    answers["/score"] = httpx.Response(200, json=scoring_payload)
    test_client.post("/workflow/start")
    upload(test_client)
    test_client.post("/workflow/job", json={"vacancy_url": "https://hh.ru/vacancy/123"})

    response = test_client.post("/workflow/scoring")

    assert response.status_code == 502
    body = response.json()
    assert body["error"] == "RESPONSE_SHAPE_ERROR"
    assert body["details"]["field"] == "scoring_result.recruiter_recommendation"
    assert test_client.get("/workflow").json()["scoring"] is None


def test_validate_url_endpoint(test_client):
    ok = test_client.post("/jobs/validate-url", json={"vacancy_url": "linkedin.com/jobs/view/42"}).json()
    assert ok == {"is_valid": True, "error": None, "detected_site": "LinkedIn"}

    bad = test_client.post("/jobs/validate-url", json={"vacancy_url": "https://hh.ru/employer/1"}).json()
    assert bad["is_valid"] is False
    assert bad["detected_site"] == "HeadHunter"


def test_validate_resume_endpoint(test_client):
    ok = test_client.post(
        "/resume/validate",
        json={"file_name": "cv.pdf", "file_size": 1024, "content_type": "application/pdf"},
    )
    assert ok.status_code == 200
    assert ok.json() == {"valid": True}

    too_big = test_client.post(
        "/resume/validate",
        json={"file_name": "cv.pdf", "file_size": 11 * 1024 * 1024, "content_type": "application/pdf"},
    )
    assert too_big.status_code == 400
    assert too_big.json()["details"]["field"] == "file_size"


# --- Saved generations ---

def generation_body(scoring_payload, **overrides):
    body = {
        "job_title": "Senior Python Developer",
        "company_name": "Globex",
        "overall_score": 78,
        "cover_letter_text": LETTER,
        "scoring_results_json": scoring_payload,
        "resume_data_json": {"personal_info": {"first_name": "Anna"}},
        "job_data_json": {"job_title": "Senior Python Developer"},
    }
    body.update(overrides)
    return body


def test_create_generation_returns_201(test_client, scoring_payload):
    response = test_client.post("/generations", json=generation_body(scoring_payload))

    assert response.status_code == 201
    assert set(response.json()) == {"id", "created_at"}


def test_create_generation_rejects_invalid_data(test_client, scoring_payload):
    response = test_client.post("/generations", json=generation_body(scoring_payload, overall_score=150))

    assert response.status_code == 400
    assert any("overall_score" in error for error in response.json()["details"]["errors"])


def test_create_generation_rejects_partial_scoring(test_client, scoring_payload):
    response = test_client.post(
        "/generations", json=generation_body(scoring_payload, scoring_results_json={"note": "partial"})
    )

    assert response.status_code == 400
    assert response.json()["details"]["errors"] == [
        "scoring_results_json is missing or has an invalid scoring_result"
    ]


def test_created_generation_opens_in_workflow(test_client, scoring_payload):
    generation_id = test_client.post("/generations", json=generation_body(scoring_payload)).json()["id"]

    response = test_client.post(f"/workflow/open/{generation_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["current_step"] == "final"
    assert body["resume_data"]["personal_info"]["first_name"] == "Anna"
    assert body["scoring"]["scoring_result"]["total_score"] == 78


def test_list_generations_rejects_unknown_sort(test_client):
    response = test_client.get("/generations", params={"sort_by": "salary"})
    assert response.status_code == 400


def test_other_users_generation_is_404(test_client, scoring_payload, other_identity):
    from settings import Environment, get_environment

    generation_id = test_client.post("/generations", json=generation_body(scoring_payload)).json()["id"]

    app.dependency_overrides[get_environment] = lambda: Environment(skip_auth=True, mock_user=other_identity)
    response = test_client.get(f"/generations/{generation_id}")

    assert response.status_code == 404
    assert response.json()["error"] == "GENERATION_NOT_FOUND"


def test_patch_and_delete_generation(test_client, scoring_payload):
    generation_id = test_client.post("/generations", json=generation_body(scoring_payload)).json()["id"]

    patched = test_client.patch(f"/generations/{generation_id}", json={"title": "Renamed", "status": "archived"})
    assert patched.status_code == 200
    assert patched.json()["title"] == "Renamed"
    assert patched.json()["status"] == "archived"

    deleted = test_client.delete(f"/generations/{generation_id}")
    assert deleted.status_code == 204
    assert test_client.get(f"/generations/{generation_id}").status_code == 404


def test_request_id_is_echoed(test_client):
    response = test_client.get("/health", headers={"X-Request-ID": "req-12345678"})
    assert response.headers["X-Request-ID"] == "req-12345678"

    generated = test_client.get("/health", headers={"X-Request-ID": "bad id"})
    assert generated.headers["X-Request-ID"] != "bad id"
    assert len(generated.headers["X-Request-ID"]) == 32


def test_manager_drops_least_recently_used_session():
    sessions = WorkflowManager(max_sessions=2)
    first = sessions.get("user-a")
    sessions.get("user-b")
    assert sessions.get("user-a") is first

    sessions.get("user-c")

    assert list(sessions.workflows) == ["user-a", "user-c"]
    assert sessions.get("user-b").current_step.value == "dashboard"
