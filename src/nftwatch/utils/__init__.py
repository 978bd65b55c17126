"""
Utility Functions
=================

Modules:
    safe_get: Nested access into marketplace JSON payloads
"""

from nftwatch.utils.safe_get import safe_get, safe_get_float, safe_get_str

__all__ = ["safe_get", "safe_get_float", "safe_get_str"]
