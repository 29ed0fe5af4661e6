"""
Proxy tracing helpers.
"""

from __future__ import annotations

from flask import current_app, request


def rw_trace_enabled() -> bool:
    """
    Enable verbose tracing for this request.
    - via config REWRITE_TRACE
    - or via cookie __rw_trace=1
    """
    try:
        if current_app.config.get("REWRITE_TRACE"):
            return True
        if request.cookies.get("__rw_trace") == "1":
            return True
    except RuntimeError:
        pass
    return False
