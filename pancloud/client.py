from typing import Any, Dict, Optional
import json
import uuid

try:
    import httpx
except ModuleNotFoundError as exc:  # pragma: no cover - user environment dependency
    raise ModuleNotFoundError(
        "Missing dependency 'httpx'. Install with: pip install httpx"
    ) from exc

from endpoints import BASE_URL, DEVICE_HEADERS, USER_AGENT
from .utils import append_log_line, get_logger, redact_payload, redacted_headers, truncate_text


class CloudClient:
    def __init__(
        self,
        base_url: str = BASE_URL,
        token: str = "",
        timeout: float = 30.0,
        http_log_path: Optional[str] = None,
        rotate_log: bool = False,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.logger = get_logger('pancloud')
        self.http_log_path = http_log_path
        self.rotate_log = rotate_log
        self._transport = transport
        # One id per process, the service ties tokens to it.
        self.login_uuid = uuid.uuid4().hex
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
            max_redirects=10,
            transport=transport,
        )

    def _default_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = dict(DEVICE_HEADERS)
        headers["loginuuid"] = self.login_uuid
        headers["content-type"] = "application/json"
        headers["authorization"] = self.token or ""
        return headers

    def _trace(self, line: str) -> None:
        if self.http_log_path:
            append_log_line(self.http_log_path, line, rotate_daily=self.rotate_log)

    def _trace_request(self, method: str, url: str, headers: Dict[str, str], kwargs: Dict[str, Any]) -> None:
        masked = redacted_headers(headers)
        self.logger.debug("HTTP %s %s headers=%s", method, url, masked)
        line = f"{method} {url} headers={masked}"
        if "json" in kwargs:
            line += f" payload={redact_payload(kwargs['json'])}"
        elif "params" in kwargs:
            line += f" params={kwargs['params']}"
        self._trace(line)

    def _trace_response(self, method: str, url: str, resp: httpx.Response) -> None:
        if not self.http_log_path:
            return
        try:
            body: Any = redact_payload(resp.json())
        except ValueError:
            body = truncate_text(resp.text)
        self._trace(f"{method} {url} status={resp.status_code} response={json.dumps(body, ensure_ascii=True)}")

    def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Authenticated call to the service; non-2xx statuses raise ``httpx.HTTPStatusError``."""
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        headers = self._default_headers()
        headers.update(kwargs.pop("headers", None) or {})
        self._trace_request(method, url, headers, kwargs)
        resp = self._client.request(method, url, headers=headers, **kwargs)
        self._trace_response(method, url, resp)
        resp.raise_for_status()
        return resp

    def raw(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Unsigned request to a third-party URL (presigned storage, redirect pages)."""
        self.logger.debug('HTTP %s %s (raw)', method, truncate_text(url, 120))
        return self._client.request(method, url, **kwargs)

    def stream(self, method: str, url: str, **kwargs: Any):
        return self._client.stream(method, url, **kwargs)

    def without_redirects(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.timeout,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=False,
            transport=self._transport,
        )

    def close(self) -> None:
        self._client.close()
