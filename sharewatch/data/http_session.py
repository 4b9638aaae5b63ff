from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional

import requests
from urllib3.exceptions import ReadTimeoutError

from sharewatch.config.bse_params import DEFAULT_USER_AGENT
from sharewatch.utils.errors import InvalidResponse, NetworkError, NetworkTimeout

logger = logging.getLogger(__name__)

_BASE_HEADERS = {
    "Accept": "text/html,application/json,application/zip,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Connection": "keep-alive",
    "Referer": "https://www.bseindia.com/",
}


def _is_read_timeout(err: requests.exceptions.RequestException) -> bool:
    # iter_content re-raises a urllib3 read timeout as a plain ConnectionError
    if not isinstance(err, requests.exceptions.ConnectionError) or not err.args:
        return False
    return isinstance(err.args[0], ReadTimeoutError)


def _raise_transport_error(err: requests.exceptions.RequestException, method: str, url: str) -> None:
    details = {"method": method, "url": url, "error": repr(err)}
    if isinstance(err, requests.exceptions.Timeout) or _is_read_timeout(err):
        raise NetworkTimeout("request timed out", details=details) from err
    raise NetworkError("request failed", details=details) from err


def _check_status(resp: requests.Response, method: str, url: str) -> None:
    """5xx is the server's problem (retryable); 4xx means this request will never work."""
    status = int(resp.status_code)
    if status < 400:
        return
    details = {"method": method, "url": url, "status": status}
    if status >= 500:
        raise NetworkError(f"server error HTTP {status}", details=details)
    raise InvalidResponse(f"request rejected HTTP {status}", details=details)


class BseSession:
    """
    Thin wrapper around requests.Session for the BSE hosts.

    Every transport failure comes out as NetworkError (NetworkTimeout for timeouts),
    chained to the original requests exception.
    """

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, session: Optional[requests.Session] = None) -> None:
        self.session = session or requests.Session()
        self.session.headers.update(_BASE_HEADERS)
        self.session.headers["User-Agent"] = user_agent

    def __enter__(self) -> "BseSession":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def get_text(self, url: str, timeout: float) -> str:
        logger.debug("GET %s timeout=%s", url, timeout)
        try:
            resp = self.session.get(url, timeout=timeout)
        except requests.exceptions.RequestException as e:
            _raise_transport_error(e, "GET", url)
        _check_status(resp, "GET", url)
        return resp.text

    def post_text(
        self,
        url: str,
        data: Any,
        timeout: float,
        headers: Optional[Mapping[str, str]] = None,
    ) -> str:
        logger.debug("POST %s timeout=%s", url, timeout)
        try:
            resp = self.session.post(url, data=data, headers=dict(headers or {}), timeout=timeout)
        except requests.exceptions.RequestException as e:
            _raise_transport_error(e, "POST", url)
        _check_status(resp, "POST", url)
        return resp.text

    def stream_to_file(self, url: str, path: Path, timeout: float, chunk_size: int = 64 * 1024) -> int:
        """
        Stream the response body of GET `url` straight into `path`.
        Returns the number of bytes written. The caller owns `path` and its cleanup.
        """
        logger.debug("GET (stream) %s -> %s timeout=%s", url, path, timeout)
        written = 0
        try:
            with self.session.get(url, stream=True, timeout=timeout) as resp:
                _check_status(resp, "GET", url)
                with open(path, "wb") as fh:
                    for chunk in resp.iter_content(chunk_size=chunk_size):
                        if chunk:
                            fh.write(chunk)
                            written += len(chunk)
        except requests.exceptions.RequestException as e:
            logger.debug("Stream aborted after %d bytes: %s", written, url)
            _raise_transport_error(e, "GET", url)
        return written
