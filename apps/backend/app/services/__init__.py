"""Services package."""

from app.services.document import document_service

__all__ = [
    "document_service",
]
