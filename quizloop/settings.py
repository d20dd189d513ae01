"""
Settings Module
Environment-driven configuration for the quiz solver service.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return int(value)


@dataclass
class Settings:
    """Service settings. `from_env` reads them from the process environment."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    render_backend: str = 'scrapingbee'
    scrapingbee_api_key: Optional[str] = None

    llm_provider: str = 'openai'
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_model: str = 'gpt-3.5-turbo'
    gemini_api_key: Optional[str] = None
    gemini_api_url: Optional[str] = None

    max_chain_length: int = 50
    http_timeout: int = 60  # seconds, 0 disables
    max_workers: int = 4
    parse_scalar_answers: bool = True
    log_level: str = 'INFO'

    # Seed identity for the in-memory store when Supabase is not configured
    solver_email: Optional[str] = None
    solver_secret: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            supabase_url=os.getenv('SUPABASE_URL') or None,
            supabase_key=os.getenv('SUPABASE_SERVICE_ROLE_KEY') or None,
            render_backend=os.getenv('RENDER_BACKEND', 'scrapingbee').lower(),
            scrapingbee_api_key=os.getenv('SCRAPINGBEE_API_KEY') or None,
            llm_provider=os.getenv('LLM_PROVIDER', 'openai').lower(),
            openai_api_key=os.getenv('OPENAI_API_KEY') or None,
            openai_base_url=os.getenv('OPENAI_BASE_URL') or None,
            openai_model=os.getenv('OPENAI_MODEL', 'gpt-3.5-turbo'),
            gemini_api_key=os.getenv('GEMINI_API_KEY') or None,
            gemini_api_url=os.getenv('GEMINI_API_URL') or None,
            max_chain_length=_env_int('MAX_CHAIN_LENGTH', 50),
            http_timeout=_env_int('HTTP_TIMEOUT', 60),
            max_workers=_env_int('MAX_WORKERS', 4),
            parse_scalar_answers=_env_bool('PARSE_SCALAR_ANSWERS', True),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
            solver_email=os.getenv('SOLVER_EMAIL') or None,
            solver_secret=os.getenv('SOLVER_SECRET') or None,
        )

    @property
    def request_timeout(self) -> Optional[int]:
        """Timeout passed to HTTP clients; None means wait indefinitely."""
        return self.http_timeout if self.http_timeout > 0 else None
