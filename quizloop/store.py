"""
Store Module
Configuration, attempt and log record stores.

``MemoryStore`` keeps everything in process and is used when no Supabase
project is configured. ``SupabaseStore`` talks to the PostgREST API of a
Supabase project with the service-role key.
"""

import uuid
import logging
import threading
from typing import Dict, List, Optional

import requests

from .api_utils import APIClient
from .exceptions import StoreError
from .models import AttemptRecord, ConfigRecord, LogRecord, utcnow

logger = logging.getLogger(__name__)

CONFIG_TABLE = 'student_config'
ATTEMPTS_TABLE = 'quiz_attempts'
LOGS_TABLE = 'quiz_logs'


class RecordStore:
    """Read-only config lookup plus two append-only record streams."""

    def get_config(self, email: str) -> Optional[ConfigRecord]:
        raise NotImplementedError

    def insert_attempt(self, attempt: AttemptRecord) -> AttemptRecord:
        raise NotImplementedError

    def insert_log(self, record: LogRecord) -> LogRecord:
        raise NotImplementedError


class MemoryStore(RecordStore):
    """Thread-safe in-process store."""

    def __init__(self, configs: Optional[List[ConfigRecord]] = None):
        self._lock = threading.Lock()
        self.configs: Dict[str, ConfigRecord] = {c.email: c for c in configs or []}
        self.attempts: List[AttemptRecord] = []
        self.logs: List[LogRecord] = []

    def add_config(self, config: ConfigRecord):
        with self._lock:
            self.configs[config.email] = config

    def get_config(self, email: str) -> Optional[ConfigRecord]:
        with self._lock:
            return self.configs.get(email)

    def insert_attempt(self, attempt: AttemptRecord) -> AttemptRecord:
        stored = attempt.model_copy(update={'id': str(uuid.uuid4()), 'created_at': utcnow()})
        with self._lock:
            self.attempts.append(stored)
        return stored

    def insert_log(self, record: LogRecord) -> LogRecord:
        stored = record.model_copy(update={'id': str(uuid.uuid4()), 'created_at': utcnow()})
        with self._lock:
            self.logs.append(stored)
        return stored

    def logs_for(self, email: str, level: Optional[str] = None) -> List[LogRecord]:
        with self._lock:
            return [r for r in self.logs
                    if r.email == email and (level is None or r.log_level == level)]

    def attempts_for(self, email: str) -> List[AttemptRecord]:
        with self._lock:
            return [a for a in self.attempts if a.email == email]


class SupabaseStore(RecordStore):
    """Supabase tables accessed through the PostgREST endpoint."""

    def __init__(self, url: str, service_key: str, timeout: Optional[int] = 60,
                 client: Optional[APIClient] = None):
        if not url or not service_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        self.rest_url = url.rstrip('/') + '/rest/v1'
        self.client = client or APIClient(timeout=timeout)
        self.headers = {
            'apikey': service_key,
            'Authorization': f'Bearer {service_key}',
            'Content-Type': 'application/json',
        }

    def get_config(self, email: str) -> Optional[ConfigRecord]:
        try:
            response = self.client.get(
                f'{self.rest_url}/{CONFIG_TABLE}',
                headers=self.headers,
                params={'select': '*', 'email': f'eq.{email}', 'limit': '1'},
            )
            rows = response.json()
        except (requests.RequestException, ValueError) as e:
            raise StoreError(f"Config lookup failed: {e}") from e
        if not rows:
            return None
        row = rows[0]
        return ConfigRecord(
            email=row['email'],
            secret=row.get('secret') or '',
            system_prompt=row.get('system_prompt'),
            user_prompt=row.get('user_prompt'),
            api_endpoint=row.get('api_endpoint'),
            github_repo=row.get('github_repo'),
        )

    def insert_attempt(self, attempt: AttemptRecord) -> AttemptRecord:
        row = self._insert(ATTEMPTS_TABLE, attempt.model_dump(exclude={'id', 'created_at'}, mode='json'))
        return AttemptRecord(**{**attempt.model_dump(), **row})

    def insert_log(self, record: LogRecord) -> LogRecord:
        row = self._insert(LOGS_TABLE, record.model_dump(exclude={'id', 'created_at'}, mode='json'))
        return LogRecord(**{**record.model_dump(), **row})

    def _insert(self, table: str, row: Dict) -> Dict:
        headers = dict(self.headers, Prefer='return=representation')
        try:
            response = self.client.post(f'{self.rest_url}/{table}', json=row, headers=headers)
            rows = response.json()
        except (requests.RequestException, ValueError) as e:
            raise StoreError(f"Insert into {table} failed: {e}") from e
        return rows[0] if isinstance(rows, list) and rows else {}


def build_store(settings) -> RecordStore:
    if settings.supabase_url and settings.supabase_key:
        return SupabaseStore(settings.supabase_url, settings.supabase_key, timeout=settings.request_timeout)
    logger.warning("Supabase not configured, using in-memory record store")
    store = MemoryStore()
    if settings.solver_email and settings.solver_secret:
        store.add_config(ConfigRecord(email=settings.solver_email, secret=settings.solver_secret))
    return store
