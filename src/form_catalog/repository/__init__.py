from .form_repository import FormRepository, SortOrder

__all__ = ["FormRepository", "SortOrder"]
