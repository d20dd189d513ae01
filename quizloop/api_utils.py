"""
API Utilities Module
HTTP helper and language-model clients.
"""

import time
import logging
from typing import Dict, Any, Optional

import requests
from openai import OpenAI, OpenAIError

from .exceptions import LLMError

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 QuizLoop/1.0'


class APIClient:
    """HTTP client. Single attempt unless max_retries is raised."""

    def __init__(self, timeout: Optional[int] = 60, max_retries: int = 1):
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.session = requests.Session()
        self.session.headers.update({'User-Agent': USER_AGENT})

    def get(self, url: str, headers: Optional[Dict] = None, params: Optional[Dict] = None,
            check_status: bool = True) -> requests.Response:
        """GET request."""
        return self._request('GET', url, headers=headers, params=params, check_status=check_status)

    def post(self, url: str, data: Any = None, json: Any = None,
             headers: Optional[Dict] = None, params: Optional[Dict] = None,
             check_status: bool = True) -> requests.Response:
        """POST request."""
        return self._request('POST', url, data=data, json=json, headers=headers,
                             params=params, check_status=check_status)

    def _request(self, method: str, url: str, check_status: bool = True, **kwargs) -> requests.Response:
        for attempt in range(self.max_retries):
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
                if check_status:
                    response.raise_for_status()
                return response
            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    logger.warning(f"{method} {url} attempt {attempt + 1} failed: {e}")
                    time.sleep(2 ** attempt)
                else:
                    raise


class LanguageModel:
    """Narrow contract for the language-model collaborator."""

    name = 'model'

    def complete(self, prompt: str, system: Optional[str] = None) -> str:
        raise NotImplementedError


class GeminiClient(LanguageModel):
    """Wrapper for the Gemini generateContent REST API."""

    name = 'gemini'

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None,
                 timeout: Optional[int] = 60):
        self.api_key = api_key
        self.api_url = api_url or \
            'https://generativelanguage.googleapis.com/v1beta/models/gemini-pro:generateContent'
        self.timeout = timeout
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY not set")

    def call(self, prompt: str, system: Optional[str] = None,
             model_args: Optional[Dict] = None) -> Dict[str, Any]:
        """Call Gemini API with prompt."""
        headers = {'Content-Type': 'application/json'}
        url = f"{self.api_url}?key={self.api_key}"

        payload = {
            'contents': [{'parts': [{'text': prompt}]}],
            'generationConfig': model_args or {'temperature': 0.1, 'maxOutputTokens': 1024}
        }
        if system:
            payload['systemInstruction'] = {'parts': [{'text': system}]}

        try:
            response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise LLMError(f"Gemini API call failed: {e}") from e

        text = ''
        if 'candidates' in data and data['candidates']:
            parts = data['candidates'][0].get('content', {}).get('parts', [])
            text = ''.join(p.get('text', '') for p in parts)

        return {'raw': data, 'text': text}

    def complete(self, prompt: str, system: Optional[str] = None) -> str:
        return self.call(prompt, system=system).get('text', '')


class OpenAIClient(LanguageModel):
    """Chat-completions client for OpenAI and compatible proxies."""

    name = 'openai'

    def __init__(self, api_key: Optional[str] = None, model: str = 'gpt-3.5-turbo',
                 base_url: Optional[str] = None, timeout: Optional[int] = 60):
        if not api_key:
            raise ValueError("OPENAI_API_KEY not set")
        self.model = model
        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    def complete(self, prompt: str, system: Optional[str] = None) -> str:
        messages = []
        if system:
            messages.append({'role': 'system', 'content': system})
        messages.append({'role': 'user', 'content': prompt})
        try:
            response = self.client.chat.completions.create(model=self.model, messages=messages)
        except OpenAIError as e:
            raise LLMError(f"OpenAI API call failed: {e}") from e
        if not response.choices:
            return ''
        return response.choices[0].message.content or ''


def build_language_model(settings) -> Optional[LanguageModel]:
    """Create the configured language model, or None to use heuristics."""
    provider = settings.llm_provider
    try:
        if provider == 'openai':
            return OpenAIClient(api_key=settings.openai_api_key, model=settings.openai_model,
                                base_url=settings.openai_base_url,
                                timeout=settings.request_timeout)
        if provider == 'gemini':
            return GeminiClient(api_key=settings.gemini_api_key, api_url=settings.gemini_api_url,
                                timeout=settings.request_timeout)
    except ValueError as e:
        logger.warning(f"Language model '{provider}' not available: {e}")
        return None
    if provider not in ('none', ''):
        logger.warning(f"Unknown LLM_PROVIDER '{provider}', using heuristic answers")
    return None
