from __future__ import annotations

import io
import sys
import zipfile
from pathlib import Path
from typing import Any, Dict, List

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import sharewatch.data.bhavcopy as bmod  # noqa: E402
from sharewatch.config.bse_params import BseConfig  # noqa: E402
from sharewatch.data.bse_client import FORMDATA_PATH, BseClient  # noqa: E402
from sharewatch.utils.errors import InvalidResponse, MalformedPayload, NetworkTimeout  # noqa: E402

EQUITY_CSV = (
    "Security Code,Issuer Name,Security Id,Security Name,Status,Group,Face Value,ISIN No,Industry,Instrument\r\n"
    "500002,ABB India Limited,ABB,ABB India Limited,Active,A ,2.00,INE117A01022,Heavy Electrical Equipment,Equity\r\n"
    "500003,Aegis Logistics Ltd,AEGISLOG,AEGIS LOGISTICS LTD.,Active,A ,1.00,INE208C01025,Oil Marketing,Equity\r\n"
)


class _FakeHttp:
    def __init__(self, responses: Dict[str, Any]) -> None:
        self.responses = responses
        self.calls: List[dict] = []
        self.closed = False

    def _answer(self, url: str) -> str:
        value = self.responses[url]
        if isinstance(value, Exception):
            raise value
        return value

    def get_text(self, url: str, timeout: float) -> str:
        self.calls.append({"method": "GET", "url": url, "timeout": timeout})
        return self._answer(url)

    def post_text(self, url: str, data: Any, timeout: float, headers=None) -> str:
        self.calls.append({"method": "POST", "url": url, "timeout": timeout, "data": data, "headers": headers})
        return self._answer(url)

    def close(self) -> None:
        self.closed = True


CFG = BseConfig()


def test_equity_list_posts_form_and_parses_rows():
    http = _FakeHttp({CFG.equity_list_url: EQUITY_CSV})
    rows = BseClient(CFG, http=http).equity_list()

    assert [r["isin_no"] for r in rows] == ["INE117A01022", "INE208C01025"]
    assert rows[0]["security_code"] == "500002"
    call = http.calls[0]
    assert call["method"] == "POST"
    assert call["timeout"] == 20.0
    assert call["headers"] == {"content-type": "application/x-www-form-urlencoded"}
    assert call["data"] == FORMDATA_PATH.read_bytes()


def test_equity_list_uses_custom_form_file(tmp_path: Path):
    form = tmp_path / "form.txt"
    form.write_bytes(b"ddlStatus=Suspended")
    cfg = BseConfig(equity_list_form_path=str(form))
    http = _FakeHttp({cfg.equity_list_url: EQUITY_CSV})
    BseClient(cfg, http=http).equity_list(timeout=3)
    assert http.calls[0]["data"] == b"ddlStatus=Suspended"
    assert http.calls[0]["timeout"] == 3


def test_equity_list_requires_isin_column():
    http = _FakeHttp({CFG.equity_list_url: "<html>\r\n<body>maintenance</body>\r\n"})
    with pytest.raises(MalformedPayload):
        BseClient(CFG, http=http).equity_list()


def test_equity_list_single_line_is_malformed():
    http = _FakeHttp({CFG.equity_list_url: "Security Code,ISIN No\r\n"})
    with pytest.raises(MalformedPayload):
        BseClient(CFG, http=http).equity_list()


def test_indices_returns_first_element():
    http = _FakeHttp({CFG.indices_url: '[{"indxnm": "SENSEX", "ltp": "36000.00"}, {"indxnm": "BSE 100"}]'})
    assert BseClient(CFG, http=http).indices() == {"indxnm": "SENSEX", "ltp": "36000.00"}
    assert http.calls[0]["timeout"] == 5.0


@pytest.mark.parametrize("body", ["", "   ", "not json", "[]", '{"indxnm": "SENSEX"}'])
def test_indices_invalid_bodies(body):
    http = _FakeHttp({CFG.indices_url: body})
    with pytest.raises(InvalidResponse):
        BseClient(CFG, http=http).indices()


def test_quote_passes_json_through():
    url = CFG.quote_url("500325")
    assert "scripcode=500325&flag=0" in url
    http = _FakeHttp({url: '{"CurrVal": "1234.5", "Data": []}'})
    assert BseClient(CFG, http=http).quote(" 500325 ", timeout=1.5) == {"CurrVal": "1234.5", "Data": []}
    assert http.calls[0]["timeout"] == 1.5


def test_quote_empty_body_is_invalid():
    http = _FakeHttp({CFG.quote_url("500325"): ""})
    with pytest.raises(InvalidResponse):
        BseClient(CFG, http=http).quote(500325)


def test_quote_requires_scrip_code():
    with pytest.raises(ValueError):
        BseClient(CFG, http=_FakeHttp({})).quote("  ")


def test_quote_with_comparison_uses_peer_endpoint():
    url = CFG.peer_url("500325")
    assert "EQPeerGp" in url and url.endswith("scripcomare=")
    http = _FakeHttp({url: '{"Table": [{"scrip_cd": 500325}]}'})
    assert BseClient(CFG, http=http).quote_with_comparison("500325") == {"Table": [{"scrip_cd": 500325}]}


def test_quote_with_comparison_bad_json():
    http = _FakeHttp({CFG.peer_url("500325"): "<html>"})
    with pytest.raises(InvalidResponse):
        BseClient(CFG, http=http).quote_with_comparison("500325")


def test_transport_errors_propagate_unchanged():
    err = NetworkTimeout("request timed out")
    http = _FakeHttp({CFG.indices_url: err})
    with pytest.raises(NetworkTimeout) as e:
        BseClient(CFG, http=http).indices()
    assert e.value is err


def test_context_manager_closes_http():
    http = _FakeHttp({})
    with BseClient(CFG, http=http):
        pass
    assert http.closed


def test_bhavcopy_delegates_to_fetcher(tmp_path: Path, monkeypatch):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("EQ_ISINCODE_150119.CSV", "SC_CODE,CLOSE\n500002,1283.40\n")
    body = buf.getvalue()

    class _StreamHttp:
        def __init__(self, user_agent: str = "") -> None:
            pass

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return None

        def stream_to_file(self, url, path, timeout, chunk_size=65536):
            Path(path).write_bytes(body)
            return len(body)

    monkeypatch.setattr(bmod, "BseSession", _StreamHttp)
    cfg = BseConfig(transient_dir=str(tmp_path))
    client = BseClient(cfg, http=_FakeHttp({}))
    assert client.bhavcopy("2019-01-15") == [{"sc_code": "500002", "close": "1283.40"}]
    assert list(tmp_path.iterdir()) == []
