import os
from dataclasses import dataclass

from endpoints import BASE_URL
from .session_store import DEFAULT_SESSION_PATH


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = True) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value not in ("0", "false", "FALSE")


@dataclass(frozen=True)
class Settings:
    base_url: str = BASE_URL
    session_path: str = DEFAULT_SESSION_PATH
    http_log_path: str = "pancloud_http.log"
    http_log_rotate: bool = True
    timeout: float = 30.0
    page_limit: int = 100
    grace_ms: int = 2000
    upload_block_size: int = 5 * 1024 * 1024
    faulthandler: bool = True

    @property
    def grace_seconds(self) -> float:
        return self.grace_ms / 1000.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            base_url=os.getenv("PANCLOUD_BASE_URL", BASE_URL),
            session_path=os.getenv("PANCLOUD_SESSION_PATH", DEFAULT_SESSION_PATH),
            http_log_path=os.getenv(
                "PANCLOUD_HTTP_LOG",
                os.path.join(os.getcwd(), "pancloud_http.log"),
            ),
            http_log_rotate=_env_bool("PANCLOUD_HTTP_LOG_ROTATE", True),
            timeout=float(_env_int("PANCLOUD_TIMEOUT", 30)),
            page_limit=max(_env_int("PANCLOUD_PAGE_LIMIT", 100), 1),
            grace_ms=max(_env_int("PANCLOUD_GRACE_MS", 2000), 0),
            faulthandler=_env_bool("PANCLOUD_FAULTHANDLER", True),
        )
