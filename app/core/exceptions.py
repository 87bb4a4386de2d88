"""Custom exception hierarchy."""

from typing import Iterable, Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class PersistenceError(DatabaseError):
    """Raised when writing grounded fields to storage fails.

    The prior grounded-fields blob is left untouched.
    """
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class NotFoundError(AppError):
    """Raised when an analysis, question, gate or form version id is unresolved."""

    def __init__(self, entity: str, entity_id: str, original_error: Exception = None):
        super().__init__(f"{entity} {entity_id} not found", original_error)
        self.entity = entity
        self.entity_id = entity_id


class NotGroundedError(AppError):
    """Raised when an operation requires a clause-grounded analysis."""

    def __init__(self, analysis_id: str):
        super().__init__(f"Analysis {analysis_id} is not clause-grounded")
        self.analysis_id = analysis_id


class PipelineError(AppError):
    """Base exception for grounding pipeline errors."""
    pass


class IngestionUnavailableError(PipelineError):
    """Raised when a referenced form version has no ingested sections or chunks.

    Aborts the whole grounding run; a partially grounded analysis could be
    mistaken for a fully reviewed one.
    """

    def __init__(self, form_version_ids: Iterable[str], detail: Optional[str] = None):
        self.form_version_ids = sorted(set(form_version_ids))
        message = (
            "No ingested sections/chunks available for form version(s): "
            + ", ".join(self.form_version_ids)
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
