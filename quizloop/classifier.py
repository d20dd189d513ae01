"""
Task Classifier Module
Keyword rules used by the heuristic answer deriver.
"""

import re
import logging
from typing import Dict, Any, Optional, Tuple
from enum import Enum

logger = logging.getLogger(__name__)


class TaskType(Enum):
    """Question shapes the heuristic deriver recognises."""
    NUMERIC_SUM = "numeric_sum"
    NUMERIC_MEAN = "numeric_mean"
    NUMERIC_MEDIAN = "numeric_median"
    NUMERIC_MAX = "numeric_max"
    NUMERIC_MIN = "numeric_min"
    NUMERIC_COUNT = "numeric_count"

    BOOLEAN = "boolean"
    JSON_RESPONSE = "json_response"

    UNKNOWN = "unknown"


NUMERIC_TYPES = (
    TaskType.NUMERIC_SUM, TaskType.NUMERIC_MEAN, TaskType.NUMERIC_MEDIAN,
    TaskType.NUMERIC_MAX, TaskType.NUMERIC_MIN, TaskType.NUMERIC_COUNT,
)

DATA_FILE_PATTERN = re.compile(r'\.(?:csv|tsv|xlsx?|pdf|json)\b|/data\b', re.IGNORECASE)


class TaskClassifier:
    """Rule-based classification of quiz questions."""

    KEYWORD_MAP = {
        TaskType.NUMERIC_SUM: ['sum', 'total', 'add up'],
        TaskType.NUMERIC_MEAN: ['mean', 'average', 'avg'],
        TaskType.NUMERIC_MEDIAN: ['median'],
        TaskType.NUMERIC_MAX: ['maximum', 'largest', 'highest'],
        TaskType.NUMERIC_MIN: ['minimum', 'smallest', 'lowest'],
        TaskType.NUMERIC_COUNT: ['how many', 'number of', 'count'],

        TaskType.BOOLEAN: ['true or false', 'yes or no', 'boolean'],
        TaskType.JSON_RESPONSE: ['json object', 'json', 'dictionary'],
    }

    # Higher priority types are checked first
    PRIORITY_ORDER = [
        TaskType.BOOLEAN,
        TaskType.NUMERIC_SUM, TaskType.NUMERIC_MEAN, TaskType.NUMERIC_MEDIAN,
        TaskType.NUMERIC_MAX, TaskType.NUMERIC_MIN, TaskType.NUMERIC_COUNT,
        TaskType.JSON_RESPONSE,
    ]

    def classify(self, question: str, data_url: Optional[str] = None) -> Tuple[TaskType, Dict[str, Any]]:
        """
        Classify a quiz question.

        Numeric types are only reported when the question refers to a data
        file, either in its text or through the extracted data URL.

        Returns:
            Tuple of (TaskType, metadata dict)
        """
        question_lower = question.lower()
        references_data = bool(data_url) or bool(DATA_FILE_PATTERN.search(question))
        metadata = {
            'matched_keyword': None,
            'references_data': references_data,
        }

        for task_type in self.PRIORITY_ORDER:
            if task_type in NUMERIC_TYPES and not references_data:
                continue
            for keyword in self.KEYWORD_MAP[task_type]:
                if re.search(r'\b' + re.escape(keyword) + r'\b', question_lower):
                    metadata['matched_keyword'] = keyword
                    logger.debug(f"Classified as {task_type.value} on '{keyword}'")
                    return task_type, metadata

        return TaskType.UNKNOWN, metadata
