# modules/job_hunt/lib/http_client.py
from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)

# Portals answer 429/5xx under load; urllib3 retries those with backoff.
_RETRY = Retry(
    total=3,
    backoff_factor=0.5,
    status_forcelist=(429, 500, 502, 503, 504),
    allowed_methods=frozenset(["GET", "POST"]),
    raise_on_status=False,
)


class HttpClient:
    """
    The network handle for one scraper kind during one cycle.

    The engine opens one per kind and closes it when that kind is done,
    whatever happened:

        with HttpClient(timeout=settings.request_timeout) as client:
            results = AmazonScraper(client).run(specs)

    Non-2xx replies raise requests.HTTPError; scrapers turn those into
    per-portal errors.
    """

    def __init__(self, timeout: float = 20.0, user_agent: str = DEFAULT_USER_AGENT) -> None:
        self.timeout = float(timeout)
        self.requests_made = 0
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent, "Accept-Language": "en-US,en;q=0.9"})
        adapter = HTTPAdapter(max_retries=_RETRY, pool_connections=4, pool_maxsize=8)
        for prefix in ("http://", "https://"):
            self.session.mount(prefix, adapter)

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        LOG.debug("Closing HttpClient after %d request(s)", self.requests_made)
        self.session.close()

    def get_text(self, url: str, *, params: Mapping[str, Any] | None = None,
                 headers: Mapping[str, str] | None = None) -> str:
        """GET an HTML/text page."""
        resp = self._send("GET", url, params=params, headers=headers)
        if not resp.encoding:
            resp.encoding = resp.apparent_encoding or "utf-8"
        return resp.text

    def get_json(self, url: str, *, params: Mapping[str, Any] | None = None,
                 headers: Mapping[str, str] | None = None) -> Any:
        resp = self._send("GET", url, params=params, headers=_json_headers(headers))
        return _decode_json(url, resp)

    def post_json(self, url: str, payload: Any, *, headers: Mapping[str, str] | None = None) -> Any:
        """POST `payload` as JSON; return the decoded JSON reply."""
        resp = self._send("POST", url, json=payload, headers=_json_headers(headers))
        return _decode_json(url, resp)

    def post_form(self, url: str, fields: Mapping[str, str], *,
                  headers: Mapping[str, str] | None = None) -> Any:
        """POST `fields` as multipart/form-data; return the decoded JSON reply."""
        files = {name: (None, value) for name, value in fields.items()}
        resp = self._send("POST", url, files=files, headers=_json_headers(headers))
        return _decode_json(url, resp)

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        started = time.monotonic()
        resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        self.requests_made += 1
        LOG.debug("%s %s -> %s in %.2fs", method, url, resp.status_code, time.monotonic() - started)
        resp.raise_for_status()
        return resp


def _json_headers(extra: Mapping[str, str] | None) -> dict[str, str]:
    return {"Accept": "application/json", **(extra or {})}


def _decode_json(url: str, resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        preview = resp.text[:200].replace("\n", " ")
        raise ValueError(f"{url} did not return JSON; body starts: {preview!r}") from e
