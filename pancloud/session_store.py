import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

DEFAULT_SESSION_PATH = ".pancloud/auth.json"


@dataclass
class Credentials:
    username: str
    password: str
    token: Optional[str] = None


def load_credentials(path: str) -> Optional[Credentials]:
    session_path = Path(path)
    if not session_path.exists():
        return None
    data = json.loads(session_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Credentials file must be a JSON object")
    username = data.get("username")
    password = data.get("password")
    if not username or not password:
        raise ValueError("Credentials file is missing username or password")
    return Credentials(username=username, password=password, token=data.get("token") or None)


def save_credentials(path: str, credentials: Credentials) -> None:
    session_path = Path(path)
    session_path.parent.mkdir(parents=True, exist_ok=True)
    session_path.write_text(json.dumps(asdict(credentials), indent=2, ensure_ascii=True) + "\n", encoding="utf-8")
    os.chmod(session_path, 0o600)


def clear_credentials(path: str) -> None:
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
