"""
bhavcopy.py

Download and parse the BSE equity bhavcopy (end-of-day summary) for one date.

Pipeline for a single call:
  1. Render the archive URL from the date (DDMMMYY token, e.g. 15JAN19).
  2. Reserve a uuid-named .zip path under the transient directory.
  3. Stream the HTTP body into that path.
  4. Open it as a ZIP, read the first entry, decode as UTF-8.
  5. Delete the path (always, on every exit path, before parsing).
  6. Parse the text into records (see tabular.py).

Each call owns its own transient path and HTTP session, so concurrent calls
(threads, or fetch_async under asyncio.gather) never touch shared state.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
import uuid
import zipfile
import zlib
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from sharewatch.config.bse_params import BseConfig, ConfigError, get_default_config
from sharewatch.data.http_session import BseSession
from sharewatch.data.tabular import RawRecord, parse_records
from sharewatch.utils.errors import ArchiveError, MalformedPayload

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str]

_MONTH_ABBR = [
    "", "JAN", "FEB", "MAR", "APR", "MAY", "JUN",
    "JUL", "AUG", "SEP", "OCT", "NOV", "DEC",
]


def coerce_date(value: DateLike) -> date:
    """Accept date, datetime (time dropped) or an ISO YYYY-MM-DD string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        try:
            return date.fromisoformat(s)
        except ValueError as e:
            raise ValueError(f"Expected a YYYY-MM-DD date, got {value!r}") from e
    raise TypeError(f"Expected date, datetime or YYYY-MM-DD string, got {type(value).__name__}")


def bhavcopy_token(value: DateLike, date_format: str = "%d%b%y") -> str:
    d = coerce_date(value)
    # %b follows the process locale; the URL needs English month names
    return d.strftime(date_format.replace("%b", _MONTH_ABBR[d.month])).upper()


def build_bhavcopy_url(value: DateLike, config: Optional[BseConfig] = None) -> str:
    cfg = config or get_default_config()
    return cfg.bhavcopy_url_template.format(token=bhavcopy_token(value, cfg.bhavcopy_date_format))


@contextmanager
def transient_archive(directory: Union[str, Path, None] = None) -> Iterator[Path]:
    """
    Reserve a unique archive path and delete it when the block exits, however it exits.
    The file itself is created by whoever writes to the path.
    A missing directory is a configuration problem and fails before any I/O.
    """
    root = Path(directory) if directory is not None else Path(tempfile.gettempdir())
    if not root.is_dir():
        raise ConfigError("Invalid BseConfig", errors=[f"transient_dir does not exist: {root}"])
    path = root / f"{uuid.uuid4().hex}.zip"
    try:
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete transient archive %s: %s", path, e)


def read_first_entry(path: Path) -> str:
    """Return the first member of the ZIP archive at `path` as text."""
    try:
        zf = zipfile.ZipFile(path)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as e:
        raise ArchiveError("cannot open archive", details={"path": str(path), "error": repr(e)}) from e

    with zf:
        entries = zf.infolist()
        if not entries:
            raise ArchiveError("archive has no entries", details={"path": str(path)})
        entry = entries[0]
        logger.debug("Reading archive entry %s (%d bytes)", entry.filename, entry.file_size)
        try:
            data = zf.read(entry)
        # corrupt stream, unsupported method, encrypted entry, truncated data
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, EOFError, OSError) as e:
            raise ArchiveError(
                "cannot read archive entry",
                details={"path": str(path), "entry": entry.filename, "error": repr(e)},
            ) from e

    try:
        # utf-8-sig: a BOM must not end up inside the first column name
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise MalformedPayload(
            "archive entry is not UTF-8 text",
            details={"entry": entry.filename, "error": str(e)},
        ) from e


class BhavcopyFetcher:
    def __init__(
        self,
        config: Optional[BseConfig] = None,
        session_factory: Optional[Callable[[BseConfig], BseSession]] = None,
    ) -> None:
        self.config = config or get_default_config()
        self._session_factory = session_factory or (lambda cfg: BseSession(user_agent=cfg.user_agent))

    def fetch(self, when: DateLike, timeout: Optional[float] = None) -> List[RawRecord]:
        """
        Download the bhavcopy for `when` and return its rows as raw-string records.

        Raises:
            NetworkError / NetworkTimeout: the download did not complete.
            InvalidResponse: the server rejected the request (4xx).
            ArchiveError: the body is not a ZIP archive, has no entries, or its first entry cannot be read.
            ConfigError: transient_dir is not an existing directory.
            MalformedPayload: the embedded file is not UTF-8 or not header + rows.
        """
        day = coerce_date(when)
        url = build_bhavcopy_url(day, self.config)
        timeout = self.config.timeout_seconds if timeout is None else timeout
        logger.info("Fetching bhavcopy: date=%s url=%s", day.isoformat(), url)

        with transient_archive(self.config.transient_dir) as archive_path:
            with self._session_factory(self.config) as http:
                n_bytes = http.stream_to_file(url, archive_path, timeout, self.config.download_chunk_size)
            logger.debug("Downloaded %d bytes to %s", n_bytes, archive_path)
            text = read_first_entry(archive_path)

        records = parse_records(text)
        logger.info("Bhavcopy parsed: date=%s rows=%d", day.isoformat(), len(records))
        return records

    async def fetch_async(self, when: DateLike, timeout: Optional[float] = None) -> List[RawRecord]:
        return await asyncio.to_thread(self.fetch, when, timeout)


def fetch_bhavcopy(
    when: DateLike,
    timeout: Optional[float] = None,
    config: Optional[BseConfig] = None,
) -> List[RawRecord]:
    return BhavcopyFetcher(config).fetch(when, timeout)


async def fetch_bhavcopy_async(
    when: DateLike,
    timeout: Optional[float] = None,
    config: Optional[BseConfig] = None,
) -> List[RawRecord]:
    return await BhavcopyFetcher(config).fetch_async(when, timeout)
