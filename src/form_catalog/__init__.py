"""form-catalog - keeps a local index of form definitions in step with disk and a remote catalog."""

__version__ = "0.1.0"
