"""
Exception hierarchy for the PrintDesk backend.

Every error raised by the service layer derives from PrintDeskError and
carries a human-readable message plus a ``details`` dictionary naming the
offending field, type or identifier. The HTTP layer maps each class to a
status code; nothing here is retried internally.

- ValidationError: missing or malformed input
- UnsupportedMediaType: an attachment of a rejected MIME type
- ConfigurationNotFound: no pricing row for the requested medium
- DuplicateConfiguration: pricing uniqueness violation
- InvalidTransition: illegal lifecycle move
- NotFound: unknown job, shop or pricing row
- StorageError: file store failure (upload, URL issuance, deletion)
- NotInitialized: a process-wide collaborator used before startup
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PrintDeskError(Exception):
    """Base class for all service-level errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(PrintDeskError):
    def __init__(self, field: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Invalid or missing value for '{field}'", details={"field": field})
        self.field = field


class UnsupportedMediaType(PrintDeskError):
    def __init__(self, content_type: str) -> None:
        super().__init__(
            f"Unsupported file type: {content_type}. Allowed types are PDF, DOC, DOCX, or images (JPEG, PNG).",
            details={"content_type": content_type},
        )
        self.content_type = content_type


class ConfigurationNotFound(PrintDeskError):
    def __init__(self, shop_id: str, paper_type: str, print_type: str) -> None:
        super().__init__(
            f"No pricing configuration found for {paper_type} {print_type}",
            details={"shop_id": shop_id, "paper_type": paper_type, "print_type": print_type},
        )
        self.shop_id = shop_id
        self.paper_type = paper_type
        self.print_type = print_type


class DuplicateConfiguration(PrintDeskError):
    def __init__(self, shop_id: str, paper_type: str, print_type: str) -> None:
        super().__init__(
            f"Pricing configuration for {paper_type} ({print_type}) already exists.",
            details={"shop_id": shop_id, "paper_type": paper_type, "print_type": print_type},
        )


class InvalidTransition(PrintDeskError):
    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot move print job from {current} to {requested}",
            details={"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


class NotFound(PrintDeskError):
    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(f"{resource} not found", details={"resource": resource, "id": identifier})
        self.resource = resource
        self.identifier = identifier


class StorageError(PrintDeskError):
    """A file store operation failed; the original exception is chained."""

    def __init__(self, operation: str, path: str, reason: str = "") -> None:
        message = f"Storage {operation} failed for {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details={"operation": operation, "path": path})
        self.operation = operation
        self.path = path


class NotInitialized(PrintDeskError):
    def __init__(self, component: str) -> None:
        super().__init__(f"{component} not initialized", details={"component": component})
        self.component = component
