from .tenant import require_tenant

__all__ = ["require_tenant"]
