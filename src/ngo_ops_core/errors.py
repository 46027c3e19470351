"""Typed errors raised by the operations core.

Every error carries a stable ``code`` so callers (the API layer, bulk result
lists) can report failures without matching on message text.
"""
from typing import Any, Optional


class OpsCoreError(Exception):
    """Base class for all domain errors."""

    code = "ops_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(OpsCoreError):
    """Raised when a referenced id does not resolve."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class PreconditionFailedError(OpsCoreError):
    """Raised when an evidence or approval gate is not satisfied."""

    code = "precondition_failed"

    def __init__(self, message: str, gate: str):
        super().__init__(message)
        self.gate = gate


class ValidationError(OpsCoreError):
    """Raised for malformed input such as an unparseable timestamp."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class PartialBulkFailure(OpsCoreError):
    """Raised by callers that want a bulk batch with failures to surface as an error.

    ``results`` is the full per-id result list, successes included.
    """

    code = "partial_bulk_failure"

    def __init__(self, results: list, failed_count: int):
        super().__init__(f"{failed_count} of {len(results)} bulk items failed")
        self.results = results
        self.failed_count = failed_count
