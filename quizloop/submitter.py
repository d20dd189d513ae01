"""
Submitter Module
Posts answers to the quiz-supplied endpoint and reads the grading reply.
"""

import logging
from typing import Any, Dict, Optional

import requests

from .api_utils import APIClient
from .exceptions import SubmissionError
from .models import GradingResult

logger = logging.getLogger(__name__)


class Submitter:
    """Single POST per answer; the grader's reply is taken as-is."""

    def __init__(self, client: Optional[APIClient] = None):
        self.client = client or APIClient()

    def submit(self, submit_url: str, email: str, secret: str, origin_url: str, answer: Any) -> GradingResult:
        payload: Dict[str, Any] = {
            'email': email,
            'secret': secret,
            'url': origin_url,
            'answer': answer,
        }

        logger.info(f"Submitting to {submit_url}: answer={answer!r}")
        try:
            response = self.client.post(submit_url, json=payload, check_status=False)
        except requests.RequestException as e:
            raise SubmissionError(f"Submission to {submit_url} failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise SubmissionError(
                f"Grader at {submit_url} returned a non-JSON response "
                f"(status {response.status_code}): {response.text[:200]}") from e

        result = GradingResult.from_response(body)
        logger.info(f"Grading result: correct={result.correct!r}, next_url={result.next_url}")
        return result
