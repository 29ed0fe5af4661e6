"""
subpath-proxy - serve an origin site under a public host/path, rewriting URLs
"""
from flask import Flask
import os


def _env_flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def create_app(config=None):
    """Create and configure the Flask application"""
    app = Flask(__name__)

    # Configuration
    # Origin (backend actually serving the content) and public (what clients see) base URLs.
    # Both are validated per request, a malformed value answers 500.
    app.config['ORIGIN_URL'] = os.environ.get('ORIGIN_URL', '')
    app.config['PUBLIC_URL'] = os.environ.get('PUBLIC_URL', '')
    # Header carrying the connecting client IP, forwarded as X-Forwarded-For
    app.config['CLIENT_IP_HEADER'] = os.environ.get('CLIENT_IP_HEADER', 'CF-Connecting-IP')
    # Write "host" instead of "host:" when the public URL uses the default port
    app.config['OMIT_EMPTY_PUBLIC_PORT'] = _env_flag('OMIT_EMPTY_PUBLIC_PORT')
    app.config['UPSTREAM_CONNECT_TIMEOUT'] = float(os.environ.get('UPSTREAM_CONNECT_TIMEOUT', 75))
    app.config['UPSTREAM_READ_TIMEOUT'] = float(os.environ.get('UPSTREAM_READ_TIMEOUT', 300))
    app.config['STREAM_CHUNK_SIZE'] = int(os.environ.get('STREAM_CHUNK_SIZE', 8192))
    app.config['REWRITE_TRACE'] = _env_flag('REWRITE_TRACE')

    if config:
        app.config.update(config)

    # Ensure Flask knows it's behind a proxy (for HTTPS detection)
    # This is important when running behind nginx with SSL termination
    from werkzeug.middleware.proxy_fix import ProxyFix
    app.wsgi_app = ProxyFix(
        app.wsgi_app,
        x_for=1,
        x_proto=1,
        x_host=1,
        x_port=1,
        x_prefix=1
    )

    from subpath_proxy.features.proxy.blueprint import bp as proxy_bp
    from subpath_proxy.features.proxy.routes import method_not_allowed
    app.register_blueprint(proxy_bp)

    @app.errorhandler(405)
    def handle_method_not_allowed(_error):
        """Methods the router does not know get the same answer as the proxy route"""
        from flask import request
        return method_not_allowed(request.method)

    return app
