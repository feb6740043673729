"""Background job orchestration for a multi-tenant HRM platform."""

__version__ = "0.1.0"
