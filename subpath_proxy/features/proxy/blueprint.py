"""
Proxy blueprint and route registration.
"""

import os
from flask import Blueprint

bp = Blueprint("proxy", __name__)

# Only GET is proxied; everything else is answered with 405.
ALLOWED_METHODS = ("GET",)

# Reduce debug logging in production for performance
IS_PRODUCTION = os.environ.get("FLASK_ENV") == "production" or os.environ.get("FLASK_DEBUG") == "0"

# Import routes for side effects (decorators attach to bp)
from . import routes  # noqa: E402,F401
