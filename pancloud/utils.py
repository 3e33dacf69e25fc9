import gzip
import hashlib
import logging
import os
import re
import shutil
import stat
from datetime import date, datetime
from typing import Any, Dict, Optional

_SECRET_HEADERS = frozenset({"authorization", "cookie", "loginuuid"})

# Substrings of JSON keys whose values never reach the trace file.
_SECRET_FIELDS = ("password", "passport", "token", "authorization", "cookie", "sharepwd", "presignedurl")


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        logger.addHandler(stream)
    debug = os.getenv("PANCLOUD_DEBUG", "0") in ("1", "true", "TRUE")
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    return logger


def redacted_headers(headers: Dict[str, Any]) -> Dict[str, Any]:
    return {
        name: "[REDACTED]" if name.lower() in _SECRET_HEADERS else value
        for name, value in headers.items()
    }


def _is_secret_field(name: Any) -> bool:
    lowered = str(name).lower()
    return any(part in lowered for part in _SECRET_FIELDS)


def redact_payload(payload: Any) -> Any:
    if isinstance(payload, list):
        return [redact_payload(item) for item in payload]
    if isinstance(payload, dict):
        return {
            name: "***" if _is_secret_field(name) else redact_payload(value)
            for name, value in payload.items()
        }
    return payload


# Date each trace file was last written, to avoid a stat() per line.
_TRACE_DAYS: Dict[str, date] = {}


def _last_written(path: str) -> Optional[date]:
    if path in _TRACE_DAYS:
        return _TRACE_DAYS[path]
    try:
        st = os.stat(path)
    except OSError:
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return date.fromtimestamp(st.st_mtime)


def _archive_previous_day(path: str, today: date, keep_days: int) -> None:
    day = _last_written(path)
    if day is None or day >= today:
        return
    archive = f"{path}.{day:%Y%m%d}.gz"
    try:
        with open(path, "rb") as src, gzip.open(archive, "ab") as dst:
            shutil.copyfileobj(src, dst)
        os.remove(path)
    except OSError as exc:
        get_logger("pancloud").debug("Trace rotation of %s skipped: %s", path, exc)
        return
    _prune_archives(path, today, keep_days)


def _prune_archives(path: str, today: date, keep_days: int) -> None:
    if keep_days <= 0:
        return
    folder = os.path.dirname(path) or "."
    stamp = re.compile(re.escape(os.path.basename(path)) + r"\.(\d{8})\.gz$")
    for name in os.listdir(folder):
        match = stamp.match(name)
        if not match:
            continue
        archived = datetime.strptime(match.group(1), "%Y%m%d").date()
        if (today - archived).days > keep_days:
            try:
                os.remove(os.path.join(folder, name))
            except OSError:
                continue


def append_log_line(
    path: str,
    line: str,
    *,
    rotate_daily: bool = False,
    keep_days: int = 7,
) -> None:
    """Append ``line`` with a timestamp; with ``rotate_daily`` yesterday's
    file is gzipped to ``<path>.YYYYMMDD.gz`` first."""
    now = datetime.now()
    if rotate_daily:
        _archive_previous_day(path, now.date(), keep_days)
    text = line.rstrip("\n")
    with open(path, "a", encoding="utf-8") as handle:
        handle.write(f"[{now:%Y-%m-%d %H:%M:%S}] {text}\n")
    _TRACE_DAYS[path] = now.date()


def truncate_text(text: Optional[str], limit: int = 2000) -> str:
    text = text or ""
    overflow = len(text) - limit
    return text if overflow <= 0 else f"{text[:limit]}...[truncated {overflow} chars]"


def format_bytes(num: int) -> str:
    """Human-readable size with binary units, e.g. ``1.50MB``."""
    value = float(num)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(value) < 1024:
            return f"{value:.2f}{unit}"
        value /= 1024
    return f"{value:.2f}PB"


def file_md5(path: str, chunk_size: int = 8192) -> str:
    digest = hashlib.md5()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def display_name_from_path(path: str) -> str:
    """Last segment of a local path, accepting either separator."""
    trimmed = path.rstrip("/\\")
    name = re.split(r"[/\\]", trimmed)[-1] if trimmed else ""
    return name or path
