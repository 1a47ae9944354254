"""Models package for form-catalog."""

from form_catalog.models.base import Base
from form_catalog.models.form import FormRecord

__all__ = [
    "Base",
    "FormRecord",
]
