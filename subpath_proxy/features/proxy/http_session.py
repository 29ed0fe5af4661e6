"""
HTTP session setup for proxying (connection pooling, no retries).
"""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


def create_proxy_session(retries: int = 0) -> requests.Session:
    """Create a requests session tuned for proxy traffic."""
    session = requests.Session()

    retry_strategy = Retry(total=retries, raise_on_status=False)

    adapter = HTTPAdapter(pool_connections=10, pool_maxsize=20, max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    return session


_SESSION = create_proxy_session()
