"""
Background Tasks Module
Detached execution of quiz chains.
"""

import uuid
import logging
import threading
import traceback
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_for_futures
from typing import Any, Dict, Optional

from .api_utils import APIClient, LanguageModel, build_language_model
from .deriver import build_deriver
from .exceptions import InternalError, RoundError, StoreError
from .models import ConfigRecord, LogRecord
from .parser import ContentExtractor
from .renderer import build_renderer
from .solver_core import QuizLoopController, DEFAULT_MAX_CHAIN_LENGTH
from .store import RecordStore
from .submitter import Submitter

logger = logging.getLogger(__name__)

# Raised from inside a round; the controller has already written the error log.
_LOGGED_ERRORS = (RoundError, InternalError)


class ChainRunner:
    """
    Runs quiz chains on a worker pool.

    ``spawn`` returns a task id at once; the caller never sees the chain's
    outcome except through the record store and ``status``.
    """

    def __init__(self, store: RecordStore, extractor: ContentExtractor, submitter: Submitter,
                 model: Optional[LanguageModel] = None, max_chain_length: int = DEFAULT_MAX_CHAIN_LENGTH,
                 parse_scalars: bool = True, max_workers: int = 4):
        self.store = store
        self.extractor = extractor
        self.submitter = submitter
        self.model = model
        self.max_chain_length = max_chain_length
        self.parse_scalars = parse_scalars
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='quiz-chain')
        self.task_results: Dict[str, Dict[str, Any]] = {}
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def build_controller(self, config: ConfigRecord, secret: str) -> QuizLoopController:
        return QuizLoopController(
            email=config.email,
            secret=secret,
            extractor=self.extractor,
            deriver=build_deriver(self.model, config, parse_scalars=self.parse_scalars),
            submitter=self.submitter,
            store=self.store,
            max_chain_length=self.max_chain_length,
        )

    def spawn(self, config: ConfigRecord, secret: str, url: str) -> str:
        """Start solving url in the background and return the task id."""
        task_id = str(uuid.uuid4())[:8]
        with self._lock:
            self.task_results[task_id] = {'status': 'processing', 'email': config.email, 'url': url}
        future = self.executor.submit(self._run, task_id, config, secret, url)
        with self._lock:
            self._futures[task_id] = future
        future.add_done_callback(lambda _: self._forget(task_id))
        return task_id

    def _forget(self, task_id: str):
        with self._lock:
            self._futures.pop(task_id, None)

    def _run(self, task_id: str, config: ConfigRecord, secret: str, url: str):
        logger.info(f"[{task_id}] Starting quiz chain for URL: {url}")
        try:
            controller = self.build_controller(config, secret)
            result = controller.run(url)
        except Exception as exc:
            self._on_failure(task_id, config.email, url, exc)
            return None
        self._on_success(task_id, result)
        return result

    def _on_success(self, task_id: str, result):
        logger.info(f"[{task_id}] Quiz chain finished: {len(result.attempts)} attempt(s), "
                    f"{result.stopped_reason}")
        self._set_status(task_id, {'status': 'completed', 'result': result.model_dump(mode='json')})

    def _on_failure(self, task_id: str, email: str, url: str, exc: Exception):
        logger.error(f"[{task_id}] Quiz solving failed: {exc}")
        if not isinstance(exc, _LOGGED_ERRORS):
            self._log_failure(email, url, exc)
        self._set_status(task_id, {'status': 'failed', 'error': str(exc)})

    def _set_status(self, task_id: str, status: Dict[str, Any]):
        with self._lock:
            self.task_results.setdefault(task_id, {}).update(status)

    def _log_failure(self, email: str, url: str, exc: BaseException):
        stack = ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        record = LogRecord(email=email, quiz_url=url, log_level='error', message='Quiz solving failed',
                           metadata={'error': str(exc), 'stack': stack})
        try:
            self.store.insert_log(record)
        except StoreError as e:
            logger.error(f"Could not persist failure log: {e}")

    def status(self, task_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            status = self.task_results.get(task_id)
            return dict(status) if status else None

    def wait(self, task_id: str, timeout: Optional[float] = None) -> bool:
        """Block until the task finishes; False if it is still running."""
        with self._lock:
            future = self._futures.get(task_id)
        if future is None:
            return True
        done, _ = wait_for_futures([future], timeout=timeout)
        return bool(done)

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)


def build_runner(settings, store: RecordStore) -> ChainRunner:
    """Wire the extractor, submitter and model from settings."""
    extractor = ContentExtractor(
        renderer=build_renderer(settings),
        client=APIClient(timeout=settings.request_timeout),
    )
    return ChainRunner(
        store=store,
        extractor=extractor,
        submitter=Submitter(APIClient(timeout=settings.request_timeout)),
        model=build_language_model(settings),
        max_chain_length=settings.max_chain_length,
        parse_scalars=settings.parse_scalar_answers,
        max_workers=settings.max_workers,
    )
