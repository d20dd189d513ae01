import base64
import threading

import pytest
import requests

from quizloop.exceptions import ExtractionError, LLMError
from quizloop.models import ConfigRecord
from quizloop.store import MemoryStore

EMAIL = "student@example.com"
SECRET = "s3cret"

_MISSING = object()


def encoded_page(question: str) -> str:
    """Static quiz page carrying the question as an atob() payload."""
    payload = base64.b64encode(question.encode('utf-8')).decode('ascii')
    return f"""<html><body>
    <div id="result"></div>
    <script>
    document.querySelector("#result").innerHTML = atob(`{payload}`);
    </script>
    </body></html>"""


class FakeResponse:
    def __init__(self, text='', json_body=_MISSING, status_code=200):
        self.text = text
        self._json = json_body
        self.status_code = status_code

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json is _MISSING:
            raise ValueError("No JSON object could be decoded")
        return self._json

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeHTTPClient:
    """Stands in for APIClient. Values may be exceptions; lists are consumed in order."""

    def __init__(self, pages=None, posts=None):
        self.pages = pages or {}
        self.posts = posts or {}
        self.fetched = []
        self.fetch_params = []
        self.posted = []

    def _next(self, table, url):
        value = table[url]
        if isinstance(value, list):
            value = value.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    def get(self, url, headers=None, params=None, check_status=True):
        self.fetched.append(url)
        self.fetch_params.append(params)
        value = self._next(self.pages, url)
        return value if isinstance(value, FakeResponse) else FakeResponse(text=value)

    def post(self, url, data=None, json=None, headers=None, params=None, check_status=True):
        self.posted.append((url, json))
        value = self._next(self.posts, url)
        return value if isinstance(value, FakeResponse) else FakeResponse(json_body=value)


class FakeRenderer:
    name = 'fake'

    def __init__(self, pages=None):
        self.pages = pages or {}
        self.rendered = []

    def render(self, url):
        self.rendered.append(url)
        return self.pages[url]


class FakeModel:
    name = 'fake'

    def __init__(self, *completions, error=None):
        self.completions = list(completions)
        self.error = error
        self.prompts = []
        self.systems = []

    def complete(self, prompt, system=None):
        self.prompts.append(prompt)
        self.systems.append(system)
        if self.error:
            raise LLMError(self.error)
        return self.completions.pop(0)


class BlockingExtractor:
    """Extractor that waits for `release` before failing the round."""

    def __init__(self):
        self.release = threading.Event()
        self.started = threading.Event()

    def extract(self, url):
        self.started.set()
        self.release.wait(timeout=10)
        raise ExtractionError("Could not fetch quiz page: quiz host unreachable")


@pytest.fixture
def config():
    return ConfigRecord(email=EMAIL, secret=SECRET)


@pytest.fixture
def store(config):
    return MemoryStore([config])
