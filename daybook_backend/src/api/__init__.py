"""
Daybook backend package.

Marks 'src.api' as a Python package and exposes the FastAPI app instance for
convenience imports (src.api.app). Applications that need their own store or
configuration call src.api.main.create_app instead.
"""

try:
    from .main import app  # noqa: F401
except ImportError:
    # During certain tooling operations (e.g., static analysis) the import
    # path may not be resolvable.
    pass
