from form_catalog.forms.parser import FormHeader, FormParser

__all__ = ["FormHeader", "FormParser"]
