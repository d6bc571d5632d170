"""Core enumerations for detected elements and labeled form fields."""

import enum


class ElementType(str, enum.Enum):
    """Kinds of elements the raster detector can emit."""

    TEXT = "text"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    SIGNATURE = "signature"
    BOX = "box"
    LINE = "line"
    BRACKET = "bracket"
    CIRCLE = "circle"


class FieldType(str, enum.Enum):
    """Field type enumeration used by annotations and predictions."""

    TEXT = "text"
    MULTILINE = "multiline"
    CHECKBOX = "checkbox"
    SIGNATURE = "signature"
    RADIO = "radio"
    DROPDOWN = "dropdown"
    LISTBOX = "listbox"
    BUTTON = "button"


# Detector element types that correspond to a fillable field type.
# Layout-only elements (lines, boxes, brackets, circles) have no entry.
ELEMENT_FIELD_TYPES: dict[ElementType, FieldType] = {
    ElementType.TEXT: FieldType.TEXT,
    ElementType.CHECKBOX: FieldType.CHECKBOX,
    ElementType.RADIO: FieldType.RADIO,
    ElementType.SIGNATURE: FieldType.SIGNATURE,
}
