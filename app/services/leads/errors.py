"""Shared error classes for lead, source and officer services and repositories."""

from __future__ import annotations


class LeadServiceError(RuntimeError):
    """Base exception raised by lead services."""

    def __init__(self, message: str, code: str = "LEAD_SERVICE_ERROR") -> None:
        super().__init__(message)
        self.code = code


class LeadNotFoundError(LeadServiceError):
    """Raised when a lead id does not resolve to a stored lead."""

    def __init__(self, lead_id: str) -> None:
        super().__init__(f"Lead not found: {lead_id}", code="404_LEAD_NOT_FOUND")
        self.lead_id = lead_id


class LeadForbiddenError(LeadServiceError):
    """Raised when the acting user may not read or mutate a lead."""

    def __init__(self, message: str = "Not authorized to access this lead") -> None:
        super().__init__(message, code="403_FORBIDDEN")


class LeadConflictError(LeadServiceError):
    """Raised when a lead for the same company identity already exists."""

    def __init__(self, company_name: str) -> None:
        super().__init__(f"Lead already exists for {company_name}", code="409_LEAD_EXISTS")
        self.company_name = company_name


class LeadValidationError(LeadServiceError):
    """Raised when caller-supplied lead data is unusable."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="422_INVALID_LEAD")


class LeadPersistenceError(LeadServiceError):
    """Raised when the repository fails to save or retrieve leads."""


class SourceServiceError(RuntimeError):
    """Base exception for source management."""

    def __init__(self, message: str, code: str = "SOURCE_SERVICE_ERROR") -> None:
        super().__init__(message)
        self.code = code


class SourceNotFoundError(SourceServiceError):
    def __init__(self, source_id: str) -> None:
        super().__init__(f"Source not found: {source_id}", code="404_SOURCE_NOT_FOUND")
        self.source_id = source_id


class SourceConflictError(SourceServiceError):
    def __init__(self, domain: str) -> None:
        super().__init__(f"Source already registered: {domain}", code="409_SOURCE_EXISTS")
        self.domain = domain
