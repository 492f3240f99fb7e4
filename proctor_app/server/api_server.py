"""FastAPI server that exposes the candidate session endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import AsyncIterator, Literal

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
import uvicorn

from proctor_app.constants.about import APP_ABOUT_TEXT, APP_NAME, APP_VERSION
from proctor_app.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from proctor_app.core.errors import (
  InvalidSessionState,
  MediaAccessDenied,
  NoQuestionsAvailable,
  PersistenceFailure,
  ProctorError,
  UnknownQuestion,
  UnknownSession,
)
from proctor_app.core.markdown_renderer import renderer
from proctor_app.core.models import (
  AnswerPayload,
  ExperienceLevel,
  InterviewSession,
  KeyEvent,
  MediaTrack,
  QuestionType,
  SessionSnapshot,
)
from proctor_app.core.report_exporter import render_session_report
from proctor_app.core.services.session_registry import SessionRegistry
from proctor_app.core.session_controller import SessionController
from proctor_app.server.remote_capabilities import RemoteCapabilityProvider


class CreateSessionPayload(BaseModel):
  candidate_id: str
  domain_id: str
  exam_code: str
  experience_level: ExperienceLevel = ExperienceLevel.FRESHER


class StartPayload(BaseModel):
  capture_granted: bool = True
  fullscreen_granted: bool = True
  denial_reason: str | None = None


class AnswerBody(BaseModel):
  answer_text: str | None = None
  answer_code: str | None = None
  selected_option: str | None = None


class NavigatePayload(BaseModel):
  index: int


class SignalPayload(BaseModel):
  kind: Literal["visibility", "fullscreen", "key", "context_menu"]
  hidden: bool | None = None
  fullscreen: bool | None = None
  key: str | None = None
  ctrl: bool = False
  shift: bool = False
  alt: bool = False
  meta: bool = False


def _http_error(exc: Exception) -> HTTPException:
  """Map a domain error to the matching HTTP status."""
  if isinstance(exc, (NoQuestionsAvailable, UnknownSession, UnknownQuestion)):
    return HTTPException(status_code=404, detail=str(exc))
  if isinstance(exc, (InvalidSessionState, MediaAccessDenied)):
    return HTTPException(status_code=409, detail=str(exc))
  if isinstance(exc, PersistenceFailure):
    return HTTPException(status_code=503, detail=str(exc))
  return HTTPException(status_code=422, detail=str(exc))


def _snapshot_to_dict(snapshot: SessionSnapshot) -> dict[str, object]:
  data = asdict(snapshot)
  data["status"] = snapshot.status.value
  data["overall_rating"] = snapshot.overall_rating.value if snapshot.overall_rating else None
  data["submission_trigger"] = (
    snapshot.submission_trigger.value if snapshot.submission_trigger else None
  )
  return data


def _result_to_dict(controller: SessionController, session: InterviewSession) -> dict[str, object]:
  return {
    "session_id": session.id,
    "status": session.status.value,
    "submission_trigger": session.submission_trigger.value if session.submission_trigger else None,
    "total_score": session.total_score,
    "max_possible_score": session.max_possible_score,
    "percentage_score": round(session.percentage_score, 2),
    "overall_rating": session.overall_rating.value if session.overall_rating else None,
    "ai_feedback": session.ai_feedback,
    "violation_count": session.violation_count,
    "time_taken_seconds": session.time_taken_seconds,
    "feedback": [
      {
        "question_id": feedback.question_id,
        "score": feedback.score,
        "max_score": feedback.max_score,
        "feedback": feedback.feedback,
        "answered": feedback.answered,
      }
      for feedback in controller.get_feedbacks()
    ],
  }


def _remote_provider(controller: SessionController) -> RemoteCapabilityProvider:
  provider = controller.get_capability_provider()
  if not isinstance(provider, RemoteCapabilityProvider):
    raise InvalidSessionState("This session does not accept remote environment signals.")
  return provider


def _get_registry_dependency(registry: SessionRegistry):
  def dependency() -> SessionRegistry:
    return registry

  return dependency


def create_api_app(registry: SessionRegistry) -> FastAPI:
  """Create a FastAPI application wired to the provided session registry."""

  @asynccontextmanager
  async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await registry.close_all()

  app = FastAPI(
    title=f"{APP_NAME} API",
    version=APP_VERSION,
    description=APP_ABOUT_TEXT,
    lifespan=lifespan,
  )
  registry_dep = _get_registry_dependency(registry)

  def controller_dep(session_id: str, sessions: SessionRegistry = Depends(registry_dep)) -> SessionController:
    try:
      return sessions.get(session_id)
    except UnknownSession as exc:
      raise _http_error(exc) from exc

  @app.post("/api/sessions", status_code=201)
  async def create_session(
    payload: CreateSessionPayload,
    sessions: SessionRegistry = Depends(registry_dep),
  ) -> dict[str, object]:
    try:
      controller = await sessions.open_session(
        payload.candidate_id.strip(),
        payload.domain_id.strip(),
        payload.exam_code,
        payload.experience_level,
      )
    except (ProctorError, ValueError) as exc:
      raise _http_error(exc) from exc
    session = controller.get_session()
    return {
      "session_id": session.id,
      "status": session.status.value,
      "exam_code": session.exam_code,
      "question_count": len(session.question_ids),
      "max_possible_score": session.max_possible_score,
      "time_limit_seconds": session.time_remaining_seconds,
      "violation_threshold": controller.get_policy().violation_threshold,
    }

  @app.post("/api/sessions/{session_id}/start")
  async def start_session(
    payload: StartPayload,
    controller: SessionController = Depends(controller_dep),
  ) -> dict[str, object]:
    try:
      _remote_provider(controller).report_grant(
        payload.capture_granted,
        payload.fullscreen_granted,
        payload.denial_reason,
      )
      snapshot = await controller.start()
    except (ProctorError, ValueError) as exc:
      raise _http_error(exc) from exc
    return _snapshot_to_dict(snapshot)

  @app.get("/api/sessions/{session_id}")
  async def get_snapshot(controller: SessionController = Depends(controller_dep)) -> dict[str, object]:
    return _snapshot_to_dict(controller.snapshot())

  @app.get("/api/sessions/{session_id}/violations")
  async def get_violations(controller: SessionController = Depends(controller_dep)) -> list[dict[str, object]]:
    return [
      {
        "type": violation.type.value,
        "detail": violation.detail,
        "timestamp": violation.timestamp.isoformat(),
      }
      for violation in controller.get_violations()
    ]

  @app.get("/api/sessions/{session_id}/questions/{index}")
  async def get_question(
    index: int,
    controller: SessionController = Depends(controller_dep),
  ) -> dict[str, object]:
    try:
      question = controller.get_question_at_index(index)
    except IndexError as exc:
      raise HTTPException(status_code=404, detail=str(exc)) from exc
    draft = next((a for a in controller.get_answers() if a.question_id == question.id), None)
    return {
      "index": index,
      "question_id": question.id,
      "type": question.type.value,
      "question_html": renderer.render_question(question),
      "options": list(question.options) if question.type is QuestionType.MULTIPLE_CHOICE else [],
      "starter_code": question.starter_code,
      "language": question.language,
      "test_cases": [
        {"input": test.input, "expected_output": test.expected_output}
        for test in question.test_cases
      ],
      "max_score": question.max_score,
      "time_limit_seconds": question.time_limit_seconds,
      "draft": asdict(draft.payload) if draft is not None else None,
    }

  @app.put("/api/sessions/{session_id}/answers/{question_id}")
  async def record_answer(
    question_id: str,
    body: AnswerBody,
    controller: SessionController = Depends(controller_dep),
  ) -> dict[str, object]:
    payload = AnswerPayload(
      answer_text=body.answer_text,
      answer_code=body.answer_code,
      selected_option=body.selected_option,
    )
    try:
      answer = controller.record_answer(question_id, payload)
    except (ProctorError, ValueError) as exc:
      raise _http_error(exc) from exc
    return {
      "question_id": answer.question_id,
      "submitted_at": answer.submitted_at.isoformat(),
    }

  @app.post("/api/sessions/{session_id}/answers/{question_id}/run")
  async def run_code(
    question_id: str,
    controller: SessionController = Depends(controller_dep),
  ) -> dict[str, object]:
    try:
      result = await controller.run_code(question_id)
    except (ProctorError, ValueError) as exc:
      raise _http_error(exc) from exc
    return {
      "status": result.status.value,
      "output": result.output,
      "error": result.error,
      "execution_time_ms": result.execution_time_ms,
    }

  @app.post("/api/sessions/{session_id}/navigate")
  async def navigate(
    payload: NavigatePayload,
    controller: SessionController = Depends(controller_dep),
  ) -> dict[str, object]:
    try:
      index = controller.navigate(payload.index)
    except (ProctorError, ValueError, IndexError) as exc:
      raise _http_error(exc) from exc
    return {
      "current_question_index": index,
      "time_remaining_seconds": controller.get_session().time_remaining_seconds,
    }

  @app.post("/api/sessions/{session_id}/tracks/{track}/toggle")
  async def toggle_track(
    track: MediaTrack,
    controller: SessionController = Depends(controller_dep),
  ) -> dict[str, object]:
    try:
      enabled = await controller.toggle_track(track)
    except (ProctorError, ValueError) as exc:
      raise _http_error(exc) from exc
    return {
      "track": track.value,
      "enabled": enabled,
      "violation_count": controller.get_session().violation_count,
    }

  @app.post("/api/sessions/{session_id}/signals", status_code=202)
  async def ingest_signal(
    payload: SignalPayload,
    controller: SessionController = Depends(controller_dep),
  ) -> dict[str, object]:
    try:
      provider = _remote_provider(controller)
      if payload.kind == "visibility":
        await provider.visibility_changed(bool(payload.hidden))
      elif payload.kind == "fullscreen":
        await provider.fullscreen_changed(bool(payload.fullscreen))
      elif payload.kind == "key":
        if not payload.key:
          raise ValueError("Key signals must name the key.")
        await provider.key_pressed(
          KeyEvent(
            key=payload.key,
            ctrl=payload.ctrl,
            shift=payload.shift,
            alt=payload.alt,
            meta=payload.meta,
          )
        )
      else:
        await provider.context_menu_opened()
    except (ProctorError, ValueError) as exc:
      raise _http_error(exc) from exc
    return {
      "status": controller.get_status().value,
      "violation_count": controller.get_session().violation_count,
    }

  @app.post("/api/sessions/{session_id}/submit")
  async def submit(controller: SessionController = Depends(controller_dep)) -> dict[str, object]:
    try:
      session = await controller.submit()
    except (ProctorError, ValueError) as exc:
      raise _http_error(exc) from exc
    return _result_to_dict(controller, session)

  @app.get("/api/sessions/{session_id}/report", response_class=PlainTextResponse)
  async def get_report(controller: SessionController = Depends(controller_dep)) -> str:
    session = controller.get_session()
    if not session.status.is_terminal:
      raise HTTPException(status_code=409, detail="Session has not finished yet.")
    return render_session_report(
      session,
      controller.get_questions(),
      controller.get_feedbacks(),
      controller.get_violations(),
    )

  return app


def run_api_server(
  registry: SessionRegistry,
  host: str = DEFAULT_HOST,
  port: int = DEFAULT_PORT,
) -> None:
  """Serve the API on the current thread until interrupted."""
  app = create_api_app(registry)
  config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
  server = uvicorn.Server(config)
  server.run()
