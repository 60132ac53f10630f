"""
Core module - domain errors shared by the whole stack.
"""

from src.core.exceptions import FanovaError, to_http_exception

__all__ = [
    "FanovaError",
    "to_http_exception",
]
