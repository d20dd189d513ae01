"""
Exceptions Module
Error taxonomy for the quiz chain solver.
"""


class QuizSolverError(Exception):
    """Base exception for quiz solver errors."""


class ValidationError(QuizSolverError):
    """Malformed inbound request (HTTP 400)."""


class AuthError(QuizSolverError):
    """Unknown identity or secret mismatch (HTTP 403)."""


class InternalError(QuizSolverError):
    """Unexpected failure outside a quiz round."""


class StoreError(QuizSolverError):
    """Record store read or write failed."""


class RenderError(QuizSolverError):
    """Rendering service failed to return markup."""


class LLMError(QuizSolverError):
    """Language model call failed."""


class RoundError(QuizSolverError):
    """A single quiz round failed; the chain stops at this round."""

    phase = 'round'


class ExtractionError(RoundError):
    """No question content or no submission URL could be located."""

    phase = 'extraction'


class DerivationError(RoundError):
    """No usable answer could be derived."""

    phase = 'derivation'


class SubmissionError(RoundError):
    """Answer could not be posted or the grader reply was unreadable."""

    phase = 'submission'
