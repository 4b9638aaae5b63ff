from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from sharewatch.config.bse_params import BseConfig, get_default_config
from sharewatch.data.bhavcopy import BhavcopyFetcher, DateLike
from sharewatch.data.http_session import BseSession
from sharewatch.data.tabular import RawRecord, parse_records
from sharewatch.utils.errors import InvalidResponse

logger = logging.getLogger(__name__)

INVALID_RESPONSE = "invalid server response"
FORMDATA_PATH = Path(__file__).resolve().parent / "bse_formdata.txt"
FORM_HEADERS = {"content-type": "application/x-www-form-urlencoded"}
EQUITY_LIST_SENTINEL = "isin_no"


def _decode_json(body: str, url: str) -> Any:
    if not body or not body.strip():
        raise InvalidResponse(INVALID_RESPONSE, details={"url": url, "reason": "empty body"})
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise InvalidResponse(INVALID_RESPONSE, details={"url": url, "reason": f"not JSON: {e}"}) from e


def _require_scrip_code(scrip_code: Any) -> str:
    s = "" if scrip_code is None else str(scrip_code).strip()
    if not s:
        raise ValueError("scrip_code must be non-empty")
    return s


class BseClient:
    """
    Request -> parse -> return wrappers for the BSE public endpoints.

    Example:
        >>> client = BseClient()
        >>> rows = client.equity_list()
        >>> rows[0]["isin_no"]
    """

    def __init__(self, config: Optional[BseConfig] = None, http: Optional[BseSession] = None) -> None:
        self.config = config or get_default_config()
        self.http = http or BseSession(user_agent=self.config.user_agent)
        self._bhavcopy = BhavcopyFetcher(self.config)

    def __enter__(self) -> "BseClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self.http.close()

    def _timeout(self, timeout: Optional[float], default: float) -> float:
        return default if timeout is None else timeout

    def _form_body(self) -> bytes:
        path = Path(self.config.equity_list_form_path) if self.config.equity_list_form_path else FORMDATA_PATH
        return path.read_bytes()

    def equity_list(self, timeout: Optional[float] = None) -> List[RawRecord]:
        """
        All equity securities listed on BSE.
        Rows are keyed by normalized column names (`isin_no`, `security_code`, ...).
        """
        url = self.config.equity_list_url
        body = self.http.post_text(
            url,
            data=self._form_body(),
            timeout=self._timeout(timeout, self.config.equity_list_timeout_seconds),
            headers=FORM_HEADERS,
        )
        records = parse_records(body, required_column=EQUITY_LIST_SENTINEL)
        logger.info("Equity list fetched: rows=%d", len(records))
        return records

    def indices(self, timeout: Optional[float] = None) -> Any:
        """Live index values (first element of the Sensex data array)."""
        url = self.config.indices_url
        payload = _decode_json(self.http.get_text(url, self._timeout(timeout, self.config.timeout_seconds)), url)
        if not isinstance(payload, list) or not payload:
            raise InvalidResponse(INVALID_RESPONSE, details={"url": url, "reason": "expected a non-empty JSON array"})
        return payload[0]

    def quote(self, scrip_code: Any, timeout: Optional[float] = None) -> Any:
        url = self.config.quote_url(_require_scrip_code(scrip_code))
        return _decode_json(self.http.get_text(url, self._timeout(timeout, self.config.timeout_seconds)), url)

    def quote_with_comparison(self, scrip_code: Any, timeout: Optional[float] = None) -> Any:
        """Quote plus peer-group comparison for one ScripCode."""
        url = self.config.peer_url(_require_scrip_code(scrip_code))
        return _decode_json(self.http.get_text(url, self._timeout(timeout, self.config.timeout_seconds)), url)

    def bhavcopy(self, when: DateLike, timeout: Optional[float] = None) -> List[RawRecord]:
        return self._bhavcopy.fetch(when, timeout)

    async def bhavcopy_async(self, when: DateLike, timeout: Optional[float] = None) -> List[RawRecord]:
        return await self._bhavcopy.fetch_async(when, timeout)
