"""
Quiz Loop Module
Components of the quiz chain solver service.
"""

from .api_utils import APIClient, GeminiClient, OpenAIClient
from .renderer import ScrapingBeeRenderer, PlaywrightRenderer
from .parser import ContentExtractor
from .classifier import TaskClassifier
from .deriver import ModelDeriver, HeuristicDeriver
from .submitter import Submitter
from .store import MemoryStore, SupabaseStore
from .solver_core import QuizLoopController
from .tasks import ChainRunner
from .settings import Settings

__all__ = [
    'APIClient',
    'GeminiClient',
    'OpenAIClient',
    'ScrapingBeeRenderer',
    'PlaywrightRenderer',
    'ContentExtractor',
    'TaskClassifier',
    'ModelDeriver',
    'HeuristicDeriver',
    'Submitter',
    'MemoryStore',
    'SupabaseStore',
    'QuizLoopController',
    'ChainRunner',
    'Settings'
]
