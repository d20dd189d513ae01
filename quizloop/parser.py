"""
Page Parser Module
Content extraction for quiz pages.

Quiz pages come in two shapes:

* encoded-script pages ship the question as a base64 literal passed to
  ``atob(...)`` inside the first inline ``<script>`` block;
* rendered pages build the question client-side, so the markup has to be
  executed by a rendering service before the visible text can be read.

``ContentExtractor.extract`` fetches the raw markup, lets a detector pick the
page variant and returns an ``ExtractedQuiz`` either way.
"""

import re
import base64
import binascii
import logging
from typing import Callable, List, Optional
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from .api_utils import APIClient
from .exceptions import ExtractionError, RenderError
from .models import ExtractedQuiz, PageMode
from .renderer import Renderer

logger = logging.getLogger(__name__)

ATOB_PATTERN = re.compile(r'atob\(\s*([\'"`])([A-Za-z0-9+/=_\-\s]*)\1\s*\)')
URL_PATTERN = re.compile(r'https?://[^\s<>"\'`]+')
SUBMIT_PHRASE = re.compile(r'post\s+your\s+answer\s+to\s+(https?://[^\s<>"\'`]+)', re.IGNORECASE)

DATA_MARKERS = ('.pdf', '.csv', '/data')
TRAILING_PUNCTUATION = '.,;:!?)]}'


def _clean_url(url: str) -> str:
    return url.rstrip(TRAILING_PUNCTUATION)


def _is_valid_url(url: str) -> bool:
    result = urlparse(url)
    return bool(result.scheme and result.netloc)


def find_urls(text: str) -> List[str]:
    """All distinct absolute URLs in text, in order of appearance."""
    urls = []
    for match in URL_PATTERN.findall(text):
        url = _clean_url(match)
        if _is_valid_url(url) and url not in urls:
            urls.append(url)
    return urls


def pick_data_url(urls: List[str], exclude: Optional[str] = None) -> Optional[str]:
    for url in urls:
        if url != exclude and any(marker in url.lower() for marker in DATA_MARKERS):
            return url
    return None


def first_inline_script(html: str) -> Optional[str]:
    """Text of the first <script> block without a src attribute."""
    soup = BeautifulSoup(html, 'lxml')
    for script in soup.find_all('script'):
        if script.get('src'):
            continue
        return script.string or script.get_text() or ''
    return None


def find_encoded_payload(html: str) -> Optional[str]:
    """Base64 literal passed to atob() in the first inline script, if any."""
    script = first_inline_script(html)
    if not script:
        return None
    match = ATOB_PATTERN.search(script)
    if not match:
        return None
    return match.group(2)


def detect_page_kind(html: str) -> PageMode:
    """Default detector: encoded-script when an atob literal is present."""
    if find_encoded_payload(html) is not None:
        return PageMode.ENCODED_SCRIPT
    return PageMode.RENDERED


def decode_base64(payload: str) -> str:
    data = re.sub(r'\s+', '', payload)
    data += '=' * (-len(data) % 4)
    try:
        if '-' in data or '_' in data:
            raw = base64.urlsafe_b64decode(data)
        else:
            raw = base64.b64decode(data, validate=True)
        return raw.decode('utf-8')
    except (binascii.Error, ValueError) as e:
        raise ExtractionError(f"Could not decode embedded base64 payload: {e}") from e


class EncodedScriptPage:
    """Static page whose question is an atob() payload."""

    mode = PageMode.ENCODED_SCRIPT

    def __init__(self, url: str, html: str):
        self.url = url
        self.html = html

    def extract(self) -> ExtractedQuiz:
        payload = find_encoded_payload(self.html)
        if payload is None:
            raise ExtractionError("No question content found: no encoded script payload on the page")

        question = decode_base64(payload).strip()
        if not question:
            raise ExtractionError("No question content found: encoded payload is empty")

        urls = find_urls(question)
        if len(urls) < 2:
            raise ExtractionError(
                f"Expected at least two URLs in the decoded question, found {len(urls)}")

        submit_url = next((u for u in urls if '/submit' in u), None)
        if not submit_url:
            raise ExtractionError("Could not find the submission URL in the decoded question")

        return ExtractedQuiz(
            question_text=question,
            submit_url=submit_url,
            data_url=pick_data_url(urls, exclude=submit_url),
            mode=self.mode,
        )


class RenderedPage:
    """Client-rendered page; `html` is the markup after JavaScript ran."""

    mode = PageMode.RENDERED

    def __init__(self, url: str, html: str):
        self.url = url
        self.html = html

    def extract(self) -> ExtractedQuiz:
        soup = BeautifulSoup(self.html, 'lxml')
        for tag in soup(['script', 'style', 'noscript', 'template']):
            tag.decompose()
        body = soup.body or soup
        text = body.get_text(separator='\n', strip=True)
        if not text:
            raise ExtractionError("Could not extract any text content from the page.")

        match = SUBMIT_PHRASE.search(text)
        if not match:
            raise ExtractionError("Could not find the submission URL on the page.")
        submit_url = _clean_url(match.group(1))

        candidates = find_urls(text)
        for link in body.find_all('a', href=True):
            resolved = urljoin(self.url, link['href'])
            if _is_valid_url(resolved) and resolved not in candidates:
                candidates.append(resolved)

        return ExtractedQuiz(
            question_text=text,
            submit_url=submit_url,
            data_url=pick_data_url(candidates, exclude=submit_url),
            mode=self.mode,
        )


class ContentExtractor:
    """
    Recovers question text, submission URL and optional data URL from a quiz page.

    Args:
        renderer: Rendering collaborator; without one only encoded-script
            pages can be extracted
        client: HTTP client for the raw markup fetch
        detector: Chooses the page variant from the raw markup
    """

    def __init__(self, renderer: Optional[Renderer] = None, client: Optional[APIClient] = None,
                 detector: Callable[[str], PageMode] = detect_page_kind):
        self.renderer = renderer
        self.client = client or APIClient()
        self.detector = detector

    def extract(self, url: str) -> ExtractedQuiz:
        html = self._fetch_raw(url)
        kind = self.detector(html) if html is not None else PageMode.RENDERED

        if kind == PageMode.ENCODED_SCRIPT:
            page = EncodedScriptPage(url, html)
        else:
            page = RenderedPage(url, self._render(url))

        quiz = page.extract()
        logger.info(f"Extracted {quiz.mode.value} quiz from {url}, submit_url: {quiz.submit_url}")
        return quiz

    def _fetch_raw(self, url: str) -> Optional[str]:
        try:
            return self.client.get(url).text
        except requests.RequestException as e:
            if self.renderer is None:
                raise ExtractionError(f"Could not fetch quiz page: {e}") from e
            logger.warning(f"Raw fetch of {url} failed, falling back to renderer: {e}")
            return None

    def _render(self, url: str) -> str:
        if self.renderer is None:
            raise ExtractionError(
                "No question content found: page has no encoded script payload "
                "and no renderer is configured")
        try:
            return self.renderer.render(url)
        except RenderError as e:
            raise ExtractionError(str(e)) from e
