import os
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence, Type

import httpx

from . import api
from .client import CloudClient
from .config import Settings
from .errors import ApiError, AuthError, ListingError, PanError, TransferRuntimeError, TransferStartError
from .events import TransferEvents
from .models import DownloadRequest, FileEntry, Phase, ShareResult, TaskKey, TransferKind, UploadRequest
from .session_store import Credentials, clear_credentials, load_credentials, save_credentials
from .utils import display_name_from_path, file_md5, get_logger


class StorageBackend(ABC):
    """Remote storage operations consumed by the controller.

    Every method blocks and may raise; the controller calls them off the GUI
    thread. Transfer progress is published on ``events`` rather than returned.
    ``username`` names the signed-in account after a successful login or
    auto-login.
    """

    events: TransferEvents
    username: Optional[str] = None

    @abstractmethod
    def try_auto_login(self) -> bool:
        ...

    @abstractmethod
    def login(self, username: str, password: str) -> str:
        ...

    @abstractmethod
    def logout(self) -> None:
        ...

    @abstractmethod
    def list_directory(self, parent_id: int) -> List[FileEntry]:
        ...

    @abstractmethod
    def start_download(self, request: DownloadRequest) -> None:
        ...

    @abstractmethod
    def start_upload(self, request: UploadRequest) -> None:
        ...

    @abstractmethod
    def create_folder(self, parent_id: int, name: str) -> None:
        ...

    @abstractmethod
    def delete_file(self, file_id: int) -> None:
        ...

    @abstractmethod
    def share_files(self, file_ids: Sequence[int], password: Optional[str] = None) -> ShareResult:
        ...


@contextmanager
def _reraise_as(error_cls: Type[PanError], action: str) -> Iterator[None]:
    try:
        yield
    except (ApiError, httpx.HTTPError) as exc:
        raise error_cls(f"{action} failed: {exc}") from exc


class PanBackend(StorageBackend):
    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[CloudClient] = None,
        events: Optional[TransferEvents] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.client = client or CloudClient(
            base_url=self.settings.base_url,
            timeout=self.settings.timeout,
            http_log_path=self.settings.http_log_path,
            rotate_log=self.settings.http_log_rotate,
        )
        self.events = events or TransferEvents()
        self.logger = get_logger("pancloud.backend")
        self._token_lock = threading.Lock()
        self.username: Optional[str] = None

    def _set_token(self, token: str) -> None:
        with self._token_lock:
            self.client.token = token

    # -- session ---------------------------------------------------------

    def try_auto_login(self) -> bool:
        try:
            creds = load_credentials(self.settings.session_path)
        except (OSError, ValueError) as exc:
            raise AuthError(f"Saved credentials unreadable: {exc}") from exc
        if creds is None:
            self.logger.info("Auto-login: no saved credentials")
            return False

        try:
            if creds.token and api.check_token(self.client, creds.token):
                self._set_token(creds.token)
                self.username = creds.username
                self.logger.info("Auto-login: saved token accepted")
                return True
            self.logger.info("Auto-login: token rejected, signing in with saved password")
            token = api.sign_in(self.client, creds.username, creds.password)
        except ApiError as exc:
            self.logger.error("Auto-login: sign-in refused code=%s", exc.code)
            return False
        except httpx.HTTPError as exc:
            raise AuthError(f"Backend unreachable: {exc}") from exc

        self.username = creds.username
        self._set_token(token)
        save_credentials(self.settings.session_path, Credentials(creds.username, creds.password, token))
        self.logger.info("Auto-login: signed in again as %s", creds.username)
        return True

    def login(self, username: str, password: str) -> str:
        self.logger.info("Signing in as %s", username)
        try:
            token = api.sign_in(self.client, username, password)
        except ApiError as exc:
            self.logger.warning("Sign-in refused: %s", exc.message)
            raise AuthError(exc.message) from exc
        except httpx.HTTPError as exc:
            raise AuthError(f"Backend unreachable: {exc}") from exc

        self.username = username
        self._set_token(token)
        try:
            save_credentials(self.settings.session_path, Credentials(username, password, token))
        except OSError as exc:
            self.logger.warning("Could not persist credentials: %s", exc)
        return "Login successful"

    def logout(self) -> None:
        self.logger.info("Logging out")
        try:
            clear_credentials(self.settings.session_path)
        except OSError as exc:
            raise PanError(f"Could not remove saved credentials: {exc}") from exc
        self._set_token("")
        self.username = None

    # -- browsing and mutations ------------------------------------------

    def list_directory(self, parent_id: int) -> List[FileEntry]:
        self.logger.debug("Listing directory %s", parent_id)
        with _reraise_as(ListingError, f"Listing of directory {parent_id}"):
            entries = api.list_all_files(self.client, parent_id, limit=self.settings.page_limit)
        self.logger.debug("Directory %s holds %d entries", parent_id, len(entries))
        return entries

    def create_folder(self, parent_id: int, name: str) -> None:
        self.logger.info("Creating folder %r in %s", name, parent_id)
        with _reraise_as(TransferStartError, f"Creating folder {name!r}"):
            api.create_folder(self.client, parent_id, name)

    def delete_file(self, file_id: int) -> None:
        self.logger.info("Moving %s to trash", file_id)
        with _reraise_as(TransferStartError, f"Deleting {file_id}"):
            api.trash_files(self.client, [file_id])

    def share_files(self, file_ids: Sequence[int], password: Optional[str] = None) -> ShareResult:
        self.logger.info("Sharing %s", list(file_ids))
        with _reraise_as(TransferStartError, "Sharing"):
            return api.create_share(self.client, file_ids, password)

    # -- transfers -------------------------------------------------------

    def _emit(self, kind: TransferKind, key: TaskKey, progress: int, phase: Phase, message: Optional[str] = None) -> None:
        self.events.emit_progress(kind, key, progress, phase, message)

    def _fail(self, kind: TransferKind, key: TaskKey, progress: int, exc: Exception) -> TransferRuntimeError:
        message = str(exc)
        self.logger.error("Transfer %s failed: %s", key, message)
        self._emit(kind, key, progress, Phase.FAILED, message)
        return TransferRuntimeError(key, message)

    def start_download(self, request: DownloadRequest) -> None:
        kind, key = TransferKind.DOWNLOAD, request.file_id
        self.logger.info("Downloading %s -> %s", request.file_name, request.destination_path)
        with _reraise_as(TransferStartError, f"Download of {request.file_name}"):
            url = api.resolve_download_url(self.client, api.get_download_url(self.client, request))
        try:
            handle = open(request.destination_path, "wb")
        except OSError as exc:
            raise TransferStartError(f"Cannot write {request.destination_path}: {exc}") from exc

        self._emit(kind, key, 0, Phase.IN_PROGRESS)
        percent = 0
        try:
            with handle, self.client.stream("GET", url) as resp:
                resp.raise_for_status()
                # Folder archives report size 0, prefer the response length.
                total = int(resp.headers.get("content-length") or 0) or max(request.size, 0)
                received = 0
                for chunk in resp.iter_bytes():
                    handle.write(chunk)
                    received += len(chunk)
                    if total > 0 and min(received * 100 // total, 100) != percent:
                        percent = min(received * 100 // total, 100)
                        self._emit(kind, key, percent, Phase.IN_PROGRESS)
        except (httpx.HTTPError, OSError) as exc:
            raise self._fail(kind, key, percent, exc) from exc

        self.logger.info("Download finished: %s", request.file_name)
        self._emit(kind, key, 100, Phase.FINISHED)

    def start_upload(self, request: UploadRequest) -> None:
        kind, key = TransferKind.UPLOAD, request.source_path
        name = display_name_from_path(request.source_path)

        self._emit(kind, key, 0, Phase.HASHING)
        try:
            size = os.path.getsize(request.source_path)
            etag = file_md5(request.source_path)
        except OSError as exc:
            raise TransferStartError(f"Cannot read {request.source_path}: {exc}") from exc

        with _reraise_as(TransferStartError, f"Upload of {name}"):
            data = api.upload_request(self.client, request.parent_directory_id, name, etag, size)
        if data.get("Reuse"):
            self.logger.info("Upload of %s satisfied by existing content", name)
            self._emit(kind, key, 100, Phase.FINISHED)
            return
        if not data.get("UploadId"):
            raise TransferStartError(f"Upload of {name} failed: no UploadId returned")

        block_size = self.settings.upload_block_size
        sent = 0
        percent = 0
        try:
            api.list_upload_parts(self.client, data)
            with open(request.source_path, "rb") as handle:
                for part_number, block in enumerate(iter(lambda: handle.read(block_size), b""), start=1):
                    url = api.prepare_upload_part(self.client, data, part_number)
                    self.client.raw("PUT", url, content=block).raise_for_status()
                    sent += len(block)
                    if size > 0:
                        percent = min(sent * 100 // size, 100)
                    self._emit(kind, key, percent, Phase.IN_PROGRESS)
            api.complete_multipart(self.client, data)
            api.upload_complete(self.client, data.get("FileId"))
        except (ApiError, httpx.HTTPError, OSError) as exc:
            raise self._fail(kind, key, percent, exc) from exc

        self.logger.info("Upload finished: %s", name)
        self._emit(kind, key, 100, Phase.FINISHED)
