from ._main import build_arg_parser
from .engine import (
    MODES,
    MODE_LIMITS,
    SessionEngine,
    SessionResult,
    TestSession,
    compute_score,
    select_questions,
)
from .errors import (
    InvariantError,
    QuizError,
    RemoteError,
    ValidationError,
)
from .importer import ImportBatch, parse_questions
from .models import HistoryEntry, Question, QuestionDraft
from .service import TrainerService, build_service
from .session import run_quiz_session, parse_session_command
from .view.quiz import QuizApp, QuestionView

__all__ = [
    "build_arg_parser",
    "MODES",
    "MODE_LIMITS",
    "SessionEngine",
    "SessionResult",
    "TestSession",
    "compute_score",
    "select_questions",
    "QuizError",
    "ValidationError",
    "RemoteError",
    "InvariantError",
    "ImportBatch",
    "parse_questions",
    "Question",
    "QuestionDraft",
    "HistoryEntry",
    "TrainerService",
    "build_service",
    "run_quiz_session",
    "parse_session_command",
    "QuizApp",
    "QuestionView",
]
