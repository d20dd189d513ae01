"""
Models Module
Records read and written by the quiz loop.
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConfigRecord(BaseModel):
    """Per-user configuration, keyed by email. Never written by the core."""
    email: str
    secret: str
    system_prompt: Optional[str] = None
    user_prompt: Optional[str] = None
    api_endpoint: Optional[str] = None
    github_repo: Optional[str] = None


class PageMode(str, Enum):
    RENDERED = "rendered"
    ENCODED_SCRIPT = "encoded_script"


class ExtractedQuiz(BaseModel):
    """Output of the content extractor."""
    question_text: str
    submit_url: str
    data_url: Optional[str] = None
    mode: PageMode


class GradingResult(BaseModel):
    """Grader verdict; `correct` is kept exactly as the grader sent it."""
    correct: Any = None
    next_url: Optional[str] = None
    raw: Any = None

    @classmethod
    def from_response(cls, body: Any) -> 'GradingResult':
        if not isinstance(body, dict):
            return cls(raw=body)
        next_url = body.get('url')
        return cls(
            correct=body.get('correct'),
            next_url=next_url if isinstance(next_url, str) and next_url else None,
            raw=body,
        )


class RoundState(str, Enum):
    START = "start"
    EXTRACTING = "extracting"
    DERIVING = "deriving"
    SUBMITTING = "submitting"
    LOGGING_RESULT = "logging_result"
    CHAINING = "chaining"
    DONE = "done"
    FAILED = "failed"


class QuizRound(BaseModel):
    """In-memory state of one extract -> derive -> submit cycle."""
    url: str
    state: RoundState = RoundState.START
    started_at: float = Field(default_factory=time.time)
    extracted: Optional[ExtractedQuiz] = None
    answer: Any = None
    grading: Optional[GradingResult] = None

    def elapsed_ms(self) -> int:
        return int((time.time() - self.started_at) * 1000)


class AttemptRecord(BaseModel):
    id: Optional[str] = None
    email: str
    quiz_url: str
    question: str
    answer: Any = None
    correct: Any = None
    response: Any = None
    duration_ms: int
    created_at: Optional[datetime] = None


class LogRecord(BaseModel):
    id: Optional[str] = None
    email: str
    quiz_url: str
    log_level: str = "info"
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class ChainResult(BaseModel):
    """Summary of a background chain run."""
    start_url: str
    attempts: List[AttemptRecord] = Field(default_factory=list)
    stopped_reason: Optional[str] = None
