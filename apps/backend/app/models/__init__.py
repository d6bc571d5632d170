"""Domain models package."""

from app.models.models import ELEMENT_FIELD_TYPES, ElementType, FieldType

__all__ = [
    "ELEMENT_FIELD_TYPES",
    "ElementType",
    "FieldType",
]
