"""Application entry point for the proctoring server."""

from __future__ import annotations

import logging
from pathlib import Path
import sys

from pydantic import ValidationError

from proctor_app.core.adapters.key_validator import AnswerKeyValidator
from proctor_app.core.adapters.local_executor import LocalPythonExecutor
from proctor_app.core.adapters.memory_persistence import InMemoryPersistence
from proctor_app.core.config import ProctorSettings
from proctor_app.core.errors import QuestionImportError
from proctor_app.core.question_importer import load_questions_from_file
from proctor_app.core.report_exporter import save_session_report
from proctor_app.core.services.clock import MonotonicClock
from proctor_app.core.services.question_bank import QuestionBank
from proctor_app.core.services.session_registry import SessionRegistry
from proctor_app.core.session_controller import SessionController
from proctor_app.core.session_policy import SessionPolicy
from proctor_app.server.api_server import run_api_server
from proctor_app.server.remote_capabilities import RemoteCapabilityProvider
from proctor_app.utils.logging_config import configure_logging

logger = logging.getLogger("proctor_app")


def _resolve_question_file(settings: ProctorSettings) -> Path | None:
    if len(sys.argv) > 1:
        return Path(sys.argv[1])
    return settings.question_file


def make_report_writer(report_dir: Path):
    """Return a close hook that writes each finished session's report into ``report_dir``."""

    def write_report(controller: SessionController) -> None:
        session = controller.get_session()
        path = report_dir / f"{session.id}.txt"
        try:
            save_session_report(
                path,
                session,
                controller.get_questions(),
                controller.get_feedbacks(),
                controller.get_violations(),
            )
        except OSError as exc:
            logger.error("Could not write report for session %s: %s", session.id, exc)
            return
        logger.info("Report for session %s written to %s", session.id, path)

    return write_report


def build_registry(
    question_bank: QuestionBank,
    policy: SessionPolicy,
    report_dir: Path | None = None,
) -> SessionRegistry:
    """Wire the reference adapters into a registry; each session gets its own provider and clock."""
    persistence = InMemoryPersistence()
    executor = LocalPythonExecutor(timeout_seconds=policy.execution_timeout_seconds)
    validator = AnswerKeyValidator()
    on_closed = make_report_writer(report_dir) if report_dir is not None else None

    def controller_factory() -> SessionController:
        return SessionController(
            question_source=question_bank,
            persistence=persistence,
            executor=executor,
            validator=validator,
            provider=RemoteCapabilityProvider(),
            clock=MonotonicClock(),
            policy=policy,
            on_closed=on_closed,
        )

    return SessionRegistry(controller_factory)


def main() -> None:
    """Load settings, initialize logging, load the question bank and serve the API."""
    try:
        settings = ProctorSettings()
    except ValidationError as exc:
        configure_logging()
        logger.error("Invalid PROCTOR_* configuration:\n%s", exc)
        sys.exit(2)

    configure_logging(settings.log_level)
    logger.info("Starting proctoring server…")

    question_file = _resolve_question_file(settings)
    if question_file is None:
        logger.error("No question file given. Pass a path or set PROCTOR_QUESTION_FILE.")
        sys.exit(2)
    try:
        imported = load_questions_from_file(question_file)
    except (OSError, QuestionImportError) as exc:
        logger.error("Could not load questions from %s: %s", question_file, exc)
        sys.exit(1)

    question_bank = QuestionBank()
    question_bank.load_questions(imported.questions)
    logger.info("Loaded %d question(s) from %s", question_bank.get_question_count(), question_file)

    registry = build_registry(question_bank, settings.build_policy(), settings.report_dir)
    logger.info("Candidate API listening on http://%s:%d/api/sessions", settings.host, settings.port)
    run_api_server(registry, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
