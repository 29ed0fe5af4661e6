"""
Proxy route: forward GET requests to the origin and rewrite the response so
every reference to the origin points at the public URL.
"""

from __future__ import annotations

import logging
import traceback

import requests
from flask import Response, current_app, request
from urllib3.exceptions import MaxRetryError, ResponseError

from .blueprint import ALLOWED_METHODS, IS_PRODUCTION, bp
from .http_session import _SESSION
from .services.dispatch import ContentClass, classify_content_type, rewrite_text_body, stream_html
from .services.headers import build_response_headers, iter_upstream_headers
from .services.ruleset import make_url_rewriter
from .services.trace import rw_trace_enabled
from .services.urls import InvalidUrlError, UrlPair, build_upstream_headers, build_upstream_url

logger = logging.getLogger(__name__)

ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]


def method_not_allowed(method: str) -> Response:
    return Response(
        f"Method {method} not allowed.",
        status=405,
        headers={"Allow": ", ".join(ALLOWED_METHODS)},
        mimetype="text/plain",
    )


def _close_after(chunks, resp, target_url: str):
    """Yield body chunks, closing the upstream response when done."""
    try:
        yield from chunks
    except Exception as e:
        logger.error(f"Error streaming content from {target_url}: {e}")
        raise
    finally:
        resp.close()


@bp.route("/", defaults={"path": ""}, methods=ROUTED_METHODS)
@bp.route("/<path:path>", methods=ROUTED_METHODS)
def proxy_path(path: str):
    """
    Proxy a request to the origin.

    URL structure: {public_url}/{path}
    Proxies to: {origin_url}/{path}
    """
    if request.method not in ALLOWED_METHODS:
        return method_not_allowed(request.method)

    trace = rw_trace_enabled()
    config = current_app.config

    try:
        pair = UrlPair.from_config(config.get("ORIGIN_URL"), config.get("PUBLIC_URL"))
    except InvalidUrlError as e:
        logger.error(f"Proxy misconfigured: {e}")
        return f"Proxy misconfigured: {e}", 500

    rewrite = make_url_rewriter(pair, omit_empty_port=config.get("OMIT_EMPTY_PUBLIC_PORT", False))

    target_url = build_upstream_url(request.url, pair)
    if pair.public_url not in request.url:
        logger.warning(
            "Request URL %s does not contain public URL %s, forwarding it unchanged",
            request.url,
            pair.public_url,
        )

    if trace:
        logger.info("[RW TRACE] proxy.url_map input=%s target=%s", request.url, target_url)
    elif not IS_PRODUCTION:
        logger.debug(f"Proxy request: path={path}, target={target_url}")

    headers = build_upstream_headers(list(request.headers.items()), pair, config.get("CLIENT_IP_HEADER", "CF-Connecting-IP"))

    try:
        resp = _SESSION.request(
            method="GET",
            url=target_url,
            headers=headers,
            allow_redirects=False,
            stream=True,
            timeout=(config.get("UPSTREAM_CONNECT_TIMEOUT", 75), config.get("UPSTREAM_READ_TIMEOUT", 300)),
        )
    except requests.exceptions.ConnectionError as e:
        logger.error(f"Connection error proxying to {target_url}: {e}")
        return "Origin is not responding.", 503
    except requests.exceptions.Timeout as e:
        logger.error(f"Timeout error proxying to {target_url}: {e}")
        return "Request to origin timed out.", 504
    except (ResponseError, MaxRetryError) as e:
        logger.error(f"Retry error proxying to {target_url}: {e}")
        return f"Error proxying request: {str(e)}", 502
    except requests.exceptions.RequestException as e:
        logger.error(f"Request error proxying to {target_url}: {e}\n{traceback.format_exc()}")
        return f"Error proxying request: {str(e)}", 502

    content_type = resp.headers.get("Content-Type")
    content_class = classify_content_type(content_type)
    response_headers = build_response_headers(iter_upstream_headers(resp), resp.status_code, rewrite)
    status = f"{resp.status_code} {resp.reason}" if resp.reason else resp.status_code
    chunk_size = config.get("STREAM_CHUNK_SIZE", 8192)

    if trace:
        logger.info(
            "[RW TRACE] proxy.response target=%s status=%s content_type=%s branch=%s",
            target_url,
            resp.status_code,
            content_type,
            content_class.value,
        )

    if content_class is ContentClass.HTML:
        # requests assumes ISO-8859-1 for text/html without a charset parameter
        encoding = resp.encoding if "charset=" in content_type.lower() else None
        body = _close_after(stream_html(resp.iter_content(chunk_size=chunk_size), encoding, rewrite), resp, target_url)
    elif content_class is ContentClass.TEXT:
        try:
            body = rewrite_text_body(resp.content, resp.encoding, rewrite)
        except requests.exceptions.RequestException as e:
            logger.error(f"Error reading body from {target_url}: {e}")
            return f"Error proxying request: {str(e)}", 502
        finally:
            resp.close()
    else:
        body = _close_after(resp.iter_content(chunk_size=chunk_size), resp, target_url)

    response = Response(body, status=status, headers=response_headers)
    if content_type is None:
        # Werkzeug adds a default type; the origin sent none.
        response.headers.pop("Content-Type", None)
    return response
