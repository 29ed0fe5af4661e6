"""
Main entry point for subpath-proxy (development server).

Production runs under gunicorn: gunicorn -c gunicorn_config.py app:app
"""
import os
import logging
from subpath_proxy import create_app

app = create_app()

if __name__ == '__main__':
    port = int(os.environ.get("PORT", 5000))

    # Enable debug mode by default for local development
    # Set FLASK_ENV=production to disable debug mode
    debug = os.environ.get('FLASK_ENV') != 'production'

    # For local development, use localhost; for production, use 0.0.0.0
    host = '127.0.0.1' if debug else '0.0.0.0'

    logging.basicConfig(level=logging.INFO)
    logging.getLogger(__name__).info("Starting subpath-proxy on http://%s:%s", host, port)
    logging.getLogger(__name__).info("Origin: %s", app.config['ORIGIN_URL'] or "(not set)")
    logging.getLogger(__name__).info("Public: %s", app.config['PUBLIC_URL'] or "(not set)")
    logging.getLogger(__name__).info("Debug mode: %s", "ON" if debug else "OFF")

    app.run(host=host, port=port, debug=debug)
