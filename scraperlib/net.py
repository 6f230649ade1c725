from typing import Any, Mapping, Optional

import urllib3
from urllib3 import exceptions as urllib3_exc
from urllib3.util.retry import Retry

from .errors import FetchError
from .types import FetchResponse


DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_READ_TIMEOUT = 15.0
DEFAULT_RETRIES = 2


class HttpClient:
    """urllib3-backed fetch capability.

    Honours the ``headers``, ``timeout``, ``retries`` and ``redirect`` keys
    of the request configuration passed to ``fetch``. Transport errors and
    non-2xx responses raise ``FetchError``.
    """

    def __init__(self, concurrency: int = 8, max_connections: int = 16):
        self.http = urllib3.PoolManager(
            num_pools=max(8, concurrency),
            maxsize=max(max_connections, concurrency),
        )

    @staticmethod
    def _timeout(value: Any) -> urllib3.Timeout:
        if isinstance(value, urllib3.Timeout):
            return value
        if isinstance(value, Mapping):
            return urllib3.Timeout(
                connect=value.get("connect", DEFAULT_CONNECT_TIMEOUT),
                read=value.get("read", DEFAULT_READ_TIMEOUT),
            )
        read = DEFAULT_READ_TIMEOUT if value is None else float(value)
        return urllib3.Timeout(connect=min(DEFAULT_CONNECT_TIMEOUT, read), read=read)

    @staticmethod
    def _retries(value: Any, redirect: bool) -> Retry:
        if isinstance(value, Retry):
            return value
        return Retry(
            total=DEFAULT_RETRIES if value is None else int(value),
            redirect=5 if redirect else False,
            backoff_factor=0.3,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False,
            raise_on_redirect=False,
        )

    def fetch(self, url: str, request_config: Optional[Mapping[str, Any]] = None) -> FetchResponse:
        request_config = request_config or {}
        redirect = bool(request_config.get("redirect", True))
        try:
            response = self.http.request(
                "GET",
                url,
                headers=dict(request_config.get("headers") or {}),
                timeout=self._timeout(request_config.get("timeout")),
                retries=self._retries(request_config.get("retries"), redirect),
                redirect=redirect,
                preload_content=True,
            )
        except urllib3_exc.HTTPError as exc:
            raise FetchError(url, exc) from exc
        if not 200 <= response.status < 300:
            raise FetchError(url, f"HTTP {response.status}", status=response.status)
        return FetchResponse(
            status=response.status,
            headers=dict(response.headers),
            body=response.data or b"",
        )

    def close(self) -> None:
        self.http.clear()
