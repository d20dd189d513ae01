"""
Solver Core Module
Quiz loop controller: extract, derive, submit, record and follow the chain.
"""

import logging
import traceback
from typing import Any, Dict, Optional, Set
from urllib.parse import urljoin

from .deriver import AnswerDeriver
from .exceptions import InternalError, RoundError, StoreError
from .models import AttemptRecord, ChainResult, GradingResult, LogRecord, QuizRound, RoundState
from .parser import ContentExtractor
from .store import RecordStore
from .submitter import Submitter

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHAIN_LENGTH = 50

_LEVELS = {'info': logging.INFO, 'error': logging.ERROR, 'debug': logging.DEBUG}


class RoundLogger:
    """Writes log records for one identity and mirrors them to the process log."""

    def __init__(self, store: RecordStore, email: str):
        self.store = store
        self.email = email

    def emit(self, quiz_url: str, level: str, message: str, metadata: Optional[Dict[str, Any]] = None):
        logger.log(_LEVELS.get(level, logging.INFO), f"[{self.email}] {message} ({quiz_url})")
        record = LogRecord(email=self.email, quiz_url=quiz_url, log_level=level,
                           message=message, metadata=metadata or {})
        try:
            self.store.insert_log(record)
        except StoreError as e:
            logger.error(f"Could not persist log record '{message}': {e}")

    def info(self, quiz_url: str, message: str, **metadata):
        self.emit(quiz_url, 'info', message, metadata)

    def error(self, quiz_url: str, message: str, **metadata):
        self.emit(quiz_url, 'error', message, metadata)


class QuizLoopController:
    """
    Drives a chain of quiz rounds for one identity.

    Each round runs START -> EXTRACTING -> DERIVING -> SUBMITTING ->
    LOGGING_RESULT and then either chains to the grader-supplied URL or
    finishes. A failed round writes one error log and re-raises.

    The chain is bounded by ``max_chain_length`` and stops on the first
    URL it has already visited.
    """

    def __init__(self, email: str, secret: str, extractor: ContentExtractor, deriver: AnswerDeriver,
                 submitter: Submitter, store: RecordStore,
                 max_chain_length: int = DEFAULT_MAX_CHAIN_LENGTH):
        self.email = email
        self.secret = secret
        self.extractor = extractor
        self.deriver = deriver
        self.submitter = submitter
        self.store = store
        self.max_chain_length = max_chain_length
        self.log = RoundLogger(store, email)

    def run(self, url: str) -> ChainResult:
        """Solve quizzes starting at url until no next URL remains."""
        result = ChainResult(start_url=url)
        visited: Set[str] = set()
        current_url: Optional[str] = url

        while current_url:
            if current_url in visited:
                self.log.error(current_url, "Chain stopped: quiz URL was already visited in this chain",
                               visited=len(visited))
                result.stopped_reason = 'cycle'
                return result
            if len(visited) >= self.max_chain_length:
                self.log.error(current_url, "Chain stopped: maximum chain length reached",
                               max_chain_length=self.max_chain_length)
                result.stopped_reason = 'max_chain_length'
                return result
            visited.add(current_url)

            attempt, grading = self.solve_round(current_url)
            result.attempts.append(attempt)

            next_url = urljoin(current_url, grading.next_url) if grading.next_url else None
            if next_url:
                self.log.info(current_url, "Chaining to next quiz", next_url=next_url)
            current_url = next_url

        result.stopped_reason = 'done'
        return result

    def solve_round(self, url: str):
        """Run one quiz round. Returns (AttemptRecord, GradingResult)."""
        quiz_round = QuizRound(url=url)
        self.log.info(url, "Starting quiz solver", url=url)

        try:
            quiz_round.state = RoundState.EXTRACTING
            quiz = self.extractor.extract(url)
            quiz_round.extracted = quiz
            self.log.info(url, "Successfully extracted page content.",
                          contentLength=len(quiz.question_text), mode=quiz.mode.value,
                          submit_url=quiz.submit_url, data_url=quiz.data_url)

            quiz_round.state = RoundState.DERIVING
            quiz_round.answer = self.deriver.derive(quiz.question_text, quiz.data_url)
            self.log.info(url, f"Received answer ({self.deriver.source}).",
                          answer=quiz_round.answer, source=self.deriver.source,
                          answer_type=type(quiz_round.answer).__name__)

            quiz_round.state = RoundState.SUBMITTING
            quiz_round.grading = self.submitter.submit(
                quiz.submit_url, self.email, self.secret, url, quiz_round.answer)

            quiz_round.state = RoundState.LOGGING_RESULT
            attempt = self._record_result(quiz_round)
        except RoundError as e:
            quiz_round.state = RoundState.FAILED
            self.log.error(url, f"Quiz {e.phase} failed: {e}",
                           error=str(e), error_type=type(e).__name__, state=RoundState.FAILED.value)
            raise
        except Exception as e:
            quiz_round.state = RoundState.FAILED
            self.log.error(url, "A critical error occurred in the quiz round.",
                           error=str(e), error_type=type(e).__name__, stack=traceback.format_exc())
            raise InternalError(str(e)) from e

        quiz_round.state = RoundState.CHAINING if quiz_round.grading.next_url else RoundState.DONE
        return attempt, quiz_round.grading

    def _record_result(self, quiz_round: QuizRound) -> AttemptRecord:
        grading: GradingResult = quiz_round.grading
        duration = quiz_round.elapsed_ms()
        attempt = self.store.insert_attempt(AttemptRecord(
            email=self.email,
            quiz_url=quiz_round.url,
            question=quiz_round.extracted.question_text,
            answer=quiz_round.answer,
            correct=grading.correct,
            response=grading.raw,
            duration_ms=duration,
        ))

        if grading.correct:
            self.log.info(quiz_round.url, "Answer correct",
                          submitResult=grading.raw, answer=quiz_round.answer, duration_ms=duration)
        else:
            self.log.error(quiz_round.url, "Answer incorrect",
                           submitResult=grading.raw, answer=quiz_round.answer, duration_ms=duration)
        return attempt
