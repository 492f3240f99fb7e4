"""End-to-end tests of the HTTP surface through FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from proctor_app.core.adapters.key_validator import AnswerKeyValidator
from proctor_app.core.adapters.memory_persistence import InMemoryPersistence
from proctor_app.core.question_importer import parse_question_text
from proctor_app.core.services.question_bank import QuestionBank
from proctor_app.core.services.session_registry import SessionRegistry
from proctor_app.core.session_controller import SessionController
from proctor_app.core.session_policy import SessionPolicy
from proctor_app.server.api_server import create_api_app
from proctor_app.server.remote_capabilities import RemoteCapabilityProvider

from conftest import FakeExecutor, ManualClock

QUESTIONS = """\
Q: What does `len([1, 2, 3])` return?
DOMAIN: python
A: 2
B: 3
CORRECT: B
MAXSCORE: 5

Q: Print **three**.
TYPE: coding
DOMAIN: python
STARTER:
```
print(3)
```
EXPECTED: 3
MAXSCORE: 5
"""


def _build_client(policy=None):
    bank = QuestionBank()
    bank.load_questions(parse_question_text(QUESTIONS))
    persistence = InMemoryPersistence()
    executor = FakeExecutor()
    executor.result.output = "3\n"

    def factory():
        return SessionController(
            question_source=bank,
            persistence=persistence,
            executor=executor,
            validator=AnswerKeyValidator(),
            provider=RemoteCapabilityProvider(),
            clock=ManualClock(),
            policy=policy,
        )

    registry = SessionRegistry(factory)
    return TestClient(create_api_app(registry)), persistence


@pytest.fixture
def client():
    test_client, _ = _build_client()
    with test_client:
        yield test_client


def _open(client, candidate="cand-1", domain="python"):
    return client.post(
        "/api/sessions",
        json={"candidate_id": candidate, "domain_id": domain, "exam_code": "ab12"},
    )


def _open_and_start(client, **grant):
    session_id = _open(client).json()["session_id"]
    response = client.post(f"/api/sessions/{session_id}/start", json=grant)
    assert response.status_code == 200
    return session_id, response.json()


def test_full_session_flow(client):
    created = _open(client)
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "awaiting_start"
    assert body["exam_code"] == "AB12"
    assert body["question_count"] == 2
    assert body["max_possible_score"] == 10
    session_id = body["session_id"]

    started = client.post(f"/api/sessions/{session_id}/start", json={})
    assert started.json()["status"] == "active"
    assert started.json()["fullscreen"] is True
    assert started.json()["camera_enabled"] is True

    question = client.get(f"/api/sessions/{session_id}/questions/0").json()
    assert "<code>len([1, 2, 3])</code>" in question["question_html"]
    assert question["options"] == ["2", "3"]
    assert "correct_option" not in question

    saved = client.put(
        f"/api/sessions/{session_id}/answers/{question['question_id']}",
        json={"selected_option": "3"},
    )
    assert saved.status_code == 200

    coding = client.get(f"/api/sessions/{session_id}/questions/1").json()
    assert "<strong>three</strong>" in coding["question_html"]
    assert 'class="language-python"' in coding["question_html"]
    run = client.post(f"/api/sessions/{session_id}/answers/{coding['question_id']}/run")
    assert run.json()["status"] == "success"

    submitted = client.post(f"/api/sessions/{session_id}/submit")
    assert submitted.status_code == 200
    result = submitted.json()
    assert result["status"] == "completed"
    assert result["submission_trigger"] == "manual"
    assert result["total_score"] == 10
    assert result["percentage_score"] == 100
    assert result["overall_rating"] == "excellent"
    assert [item["answered"] for item in result["feedback"]] == [True, True]

    report = client.get(f"/api/sessions/{session_id}/report")
    assert report.status_code == 200
    assert "STATUS: completed" in report.text

    late = client.put(
        f"/api/sessions/{session_id}/answers/{question['question_id']}",
        json={"selected_option": "2"},
    )
    assert late.status_code == 409


def test_signals_become_violations(client):
    session_id, _ = _open_and_start(client)

    hidden = client.post(f"/api/sessions/{session_id}/signals", json={"kind": "visibility", "hidden": True})
    assert hidden.status_code == 202
    assert hidden.json()["violation_count"] == 1
    client.post(
        f"/api/sessions/{session_id}/signals",
        json={"kind": "key", "key": "I", "ctrl": True, "shift": True},
    )
    client.post(f"/api/sessions/{session_id}/signals", json={"kind": "key", "key": "a"})

    violations = client.get(f"/api/sessions/{session_id}/violations").json()
    assert [v["type"] for v in violations] == ["tab_switch", "forbidden_shortcut"]
    assert violations[1]["detail"] == "Attempted to use Ctrl+Shift+I"


def test_each_fullscreen_exit_counts(client):
    session_id, _ = _open_and_start(client)

    for _ in range(2):
        client.post(f"/api/sessions/{session_id}/signals", json={"kind": "fullscreen", "fullscreen": False})

    violations = client.get(f"/api/sessions/{session_id}/violations").json()
    assert [v["type"] for v in violations] == ["fullscreen_exit", "fullscreen_exit"]
    assert client.get(f"/api/sessions/{session_id}").json()["fullscreen"] is True


def test_violation_limit_closes_session(client):
    session_id, _ = _open_and_start(client)

    client.post(f"/api/sessions/{session_id}/signals", json={"kind": "fullscreen", "fullscreen": False})
    client.post(f"/api/sessions/{session_id}/signals", json={"kind": "visibility", "hidden": True})
    client.post(f"/api/sessions/{session_id}/signals", json={"kind": "context_menu"})

    result = client.post(f"/api/sessions/{session_id}/submit").json()
    assert result["status"] == "completed"
    assert result["submission_trigger"] == "violation_limit"
    assert result["violation_count"] == 3


def test_disabling_camera_is_reported(client):
    session_id, _ = _open_and_start(client)

    toggled = client.post(f"/api/sessions/{session_id}/tracks/camera/toggle")

    assert toggled.json() == {"track": "camera", "enabled": False, "violation_count": 1}
    snapshot = client.get(f"/api/sessions/{session_id}").json()
    assert snapshot["camera_enabled"] is False


def test_denied_capture_is_recorded_as_violation(client):
    session_id, snapshot = _open_and_start(
        client, capture_granted=False, denial_reason="NotAllowedError"
    )

    assert snapshot["status"] == "active"
    assert snapshot["violation_count"] == 1
    violations = client.get(f"/api/sessions/{session_id}/violations").json()
    assert violations[0]["type"] == "media_access_denied"


def test_required_capture_denied_abandons_session():
    test_client, persistence = _build_client(SessionPolicy(require_media=True))
    with test_client as client:
        session_id, snapshot = _open_and_start(client, capture_granted=False)

        assert snapshot["status"] == "abandoned"
        assert snapshot["submission_trigger"] == "start_failed"
        assert persistence.get_session_row(session_id)["status"] == "abandoned"
        assert client.post(f"/api/sessions/{session_id}/submit").status_code == 200


def test_navigation(client):
    session_id, _ = _open_and_start(client)

    moved = client.post(f"/api/sessions/{session_id}/navigate", json={"index": 1})
    assert moved.json()["current_question_index"] == 1
    assert client.post(f"/api/sessions/{session_id}/navigate", json={"index": 5}).status_code == 422
    assert client.get(f"/api/sessions/{session_id}/questions/9").status_code == 404


def test_error_mapping(client):
    assert _open(client, domain="haskell").status_code == 404
    assert client.get("/api/sessions/missing").status_code == 404

    session_id = _open(client).json()["session_id"]
    assert _open(client).status_code == 409
    assert client.post(f"/api/sessions/{session_id}/submit").status_code == 409
    assert client.get(f"/api/sessions/{session_id}/report").status_code == 409

    client.post(f"/api/sessions/{session_id}/start", json={})
    question_id = client.get(f"/api/sessions/{session_id}/questions/0").json()["question_id"]
    invalid = client.put(
        f"/api/sessions/{session_id}/answers/{question_id}",
        json={"selected_option": "42"},
    )
    assert invalid.status_code == 422
    unknown = client.put(f"/api/sessions/{session_id}/answers/nope", json={"answer_text": "x"})
    assert unknown.status_code == 404
    not_coding = client.post(f"/api/sessions/{session_id}/answers/{question_id}/run")
    assert not_coding.status_code == 422
    bad_signal = client.post(f"/api/sessions/{session_id}/signals", json={"kind": "key"})
    assert bad_signal.status_code == 422
