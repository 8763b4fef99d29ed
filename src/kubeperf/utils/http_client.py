import logging

import httpx

from .. import __version__
from ..core.config import Config

logger = logging.getLogger(__name__)

USER_AGENT = f"kubeperf/{__version__}"


def get_async_http_client(
    settings: Config,
    timeout: float = None,
    verify: bool = None,
) -> httpx.AsyncClient:
    """
    Returns a configured httpx.AsyncClient with:
    - The per-query timeout (connect and read).
    - Bearer token or basic auth for the telemetry backend.
    - Standard User-Agent header.
    """
    t = timeout if timeout is not None else settings.query_timeout
    headers = {"User-Agent": USER_AGENT}
    if settings.PROMETHEUS_BEARER_TOKEN:
        headers["Authorization"] = f"Bearer {settings.PROMETHEUS_BEARER_TOKEN}"

    auth = None
    if settings.PROMETHEUS_USERNAME and settings.PROMETHEUS_PASSWORD:
        auth = (settings.PROMETHEUS_USERNAME, settings.PROMETHEUS_PASSWORD)

    # httpx does not retry; each source is attempted once per collection.
    return httpx.AsyncClient(
        timeout=httpx.Timeout(t),
        headers=headers,
        auth=auth,
        verify=settings.PROMETHEUS_VERIFY_CERTS if verify is None else verify,
        follow_redirects=True,
    )
