from __future__ import annotations

import dataclasses
import json
import logging
from datetime import date, datetime
from pathlib import Path, PurePath
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

logger = logging.getLogger(__name__)


def _json_default(obj: Any) -> Any:
    # json.dumps hook for the few non-JSON types a payload can carry
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, PurePath):
        return str(obj)
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def dumps_payload(obj: Any, *, sort_keys: bool = False) -> str:
    """
    Render a fetch result as JSON text. Records and decoded API payloads are
    already plain dicts/lists of strings; dates, paths and config dataclasses
    are converted on the way out.
    """
    return json.dumps(obj, default=_json_default, indent=2, sort_keys=sort_keys)


def _ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _column_order(records: Sequence[Mapping[str, Any]]) -> List[str]:
    seen: Dict[str, None] = {}
    for rec in records:
        for k in rec:
            seen.setdefault(k, None)
    return list(seen)


def records_to_frame(
    records: Sequence[Mapping[str, Any]],
    columns: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Records -> DataFrame with pandas "string" dtype for every column.
    Missing keys become <NA>. Values are never coerced to numbers.
    """
    cols = list(columns) if columns is not None else _column_order(records)
    df = pd.DataFrame.from_records(list(records), columns=cols)
    return df.astype("string")


def write_parquet_stable(df: pd.DataFrame, out_path: Path, *, compression: str = "zstd") -> None:
    """
    Stable Parquet writer:
    - row order untouched
    - stripped schema metadata
    - fixed writer options
    """
    _ensure_parent_dir(out_path)
    table = pa.Table.from_pandas(df, preserve_index=False).replace_schema_metadata({})
    pq.write_table(
        table,
        where=str(out_path),
        compression=compression,
        use_dictionary=False,
        write_statistics=True,
        version="2.6",
    )


def write_records(records: Sequence[Mapping[str, Any]], out_path: Path, *, na_rep: str = "") -> pd.DataFrame:
    """
    Write records to .csv or .parquet. Parquet keeps missing keys as nulls.
    CSV writes them as `na_rep`; with the default "" a missing key and an
    empty-string value read back the same, so pass a marker such as "<NA>"
    when the difference matters.
    """
    out_path = Path(out_path)
    suf = out_path.suffix.lower()
    if suf not in (".csv", ".parquet", ".pq"):
        raise ValueError(f"Unsupported output extension: {out_path} (use .csv or .parquet)")

    df = records_to_frame(records)
    if suf == ".csv":
        _ensure_parent_dir(out_path)
        df.to_csv(out_path, index=False, na_rep=na_rep)
    else:
        write_parquet_stable(df, out_path)

    logger.info("Wrote %d rows x %d cols to %s", len(df), len(df.columns), out_path)
    return df


def write_json(obj: Any, out_path: Path) -> None:
    out_path = Path(out_path)
    _ensure_parent_dir(out_path)
    out_path.write_text(dumps_payload(obj, sort_keys=True), encoding="utf-8")
    logger.info("Wrote JSON to %s", out_path)
