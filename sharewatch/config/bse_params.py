from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)

HOST_URL = "https://www.bseindia.com"
API_URL = "https://api.bseindia.com"

# Anything without a browser UA gets a 403 from the API host.
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# Fields that must carry a placeholder for str.format substitution.
TEMPLATE_PLACEHOLDERS: Dict[str, str] = {
    "quote_url_template": "{scrip_code}",
    "peer_url_template": "{scrip_code}",
    "bhavcopy_url_template": "{token}",
}

URL_FIELDS = (
    "equity_list_url",
    "indices_url",
    "quote_url_template",
    "peer_url_template",
    "bhavcopy_url_template",
)


class ConfigError(ValueError):
    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


@dataclass(frozen=True)
class BseConfig:
    equity_list_url: str = f"{HOST_URL}/corporates/List_Scrips.aspx"
    # Literal JSON in the query string; never passed through str.format.
    indices_url: str = f'{API_URL}/bseindia/api/Sensex/getSensexData?json={{"fields":"2,3,4,5,6,7"}}'
    quote_url_template: str = (
        f"{API_URL}/BseIndiaAPI/api/StockReachGraph/w?scripcode={{scrip_code}}&flag=0&fromdate=&todate=&seriesid="
    )
    peer_url_template: str = f"{API_URL}/BseIndiaAPI/api/EQPeerGp/w?scripcode={{scrip_code}}&scripcomare="
    bhavcopy_url_template: str = f"{HOST_URL}/download/BhavCopy/Equity/EQ_ISINCODE_{{token}}.zip"
    bhavcopy_date_format: str = "%d%b%y"  # DDMMMYY, upper-cased when rendered

    timeout_seconds: float = 5.0
    equity_list_timeout_seconds: float = 20.0

    transient_dir: Optional[str] = None  # None => tempfile.gettempdir()
    equity_list_form_path: Optional[str] = None  # None => bundled bse_formdata.txt
    user_agent: str = DEFAULT_USER_AGENT
    download_chunk_size: int = 64 * 1024

    def quote_url(self, scrip_code: str) -> str:
        return self.quote_url_template.format(scrip_code=scrip_code)

    def peer_url(self, scrip_code: str) -> str:
        return self.peer_url_template.format(scrip_code=scrip_code)


DEFAULT_CONFIG = BseConfig()


def get_default_config() -> BseConfig:
    return DEFAULT_CONFIG


def merge_overrides(
    base_config: BseConfig,
    overrides: Optional[Mapping[str, Any]],
    *,
    strict: bool = True,
) -> BseConfig:
    """
    Return a copy of `base_config` with `overrides` applied (dataclasses.replace).
    strict=True => keys that are not BseConfig fields raise ConfigError;
    strict=False => they are dropped.
    """
    if not overrides:
        return base_config

    field_names = {f.name for f in dataclasses.fields(base_config)}
    unknown = sorted(set(overrides.keys()) - field_names)
    if strict and unknown:
        raise ConfigError("Unknown BseConfig override keys", errors=unknown)

    filtered = {k: v for k, v in overrides.items() if k in field_names}
    return replace(base_config, **filtered)


def _positive_number(value: Any, field_name: str, errors: List[str]) -> None:
    try:
        if float(value) <= 0:
            errors.append(f"{field_name} must be > 0, got {value!r}")
    except (TypeError, ValueError):
        errors.append(f"{field_name} must be a number, got {value!r}")


def validate_config(cfg: BseConfig) -> None:
    errors: List[str] = []

    for name in URL_FIELDS:
        url = getattr(cfg, name)
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            errors.append(f"{name} must be an http(s) URL, got {url!r}")

    for name, placeholder in TEMPLATE_PLACEHOLDERS.items():
        template = getattr(cfg, name)
        if isinstance(template, str) and placeholder not in template:
            errors.append(f"{name} must contain {placeholder}")

    if not cfg.bhavcopy_date_format or "%" not in cfg.bhavcopy_date_format:
        errors.append(f"bhavcopy_date_format must be a strftime pattern, got {cfg.bhavcopy_date_format!r}")

    _positive_number(cfg.timeout_seconds, "timeout_seconds", errors)
    _positive_number(cfg.equity_list_timeout_seconds, "equity_list_timeout_seconds", errors)
    _positive_number(cfg.download_chunk_size, "download_chunk_size", errors)

    if cfg.transient_dir is not None and not Path(cfg.transient_dir).is_dir():
        errors.append(f"transient_dir does not exist: {cfg.transient_dir}")

    if cfg.equity_list_form_path is not None and not Path(cfg.equity_list_form_path).is_file():
        errors.append(f"equity_list_form_path does not exist: {cfg.equity_list_form_path}")

    if errors:
        raise ConfigError("Invalid BseConfig", errors=errors)


def load_config(path: Union[str, Path, None] = None, overrides: Optional[Mapping[str, Any]] = None) -> BseConfig:
    """
    Build a validated BseConfig.
    Precedence: explicit overrides > JSON file at `path` > defaults.
    """
    cfg = get_default_config()

    if path is not None:
        p = Path(path)
        if not p.exists():
            raise ConfigError(f"Config file not found: {p}")
        try:
            raw = json.loads(p.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Config file is not valid JSON: {p}", errors=[str(e)]) from e
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file must hold a JSON object: {p}")
        logger.debug("Loaded config overrides from %s: keys=%s", p, sorted(raw))
        cfg = merge_overrides(cfg, raw)

    cfg = merge_overrides(cfg, overrides)
    validate_config(cfg)
    return cfg
