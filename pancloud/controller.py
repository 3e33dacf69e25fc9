from typing import Any, Callable, Optional, Sequence, Tuple

from PySide6.QtCore import QObject, Signal, Slot

from .backend import StorageBackend
from .config import Settings
from .errors import NotAuthenticatedError, TransferStartError
from .events import Subscription
from .listing import DirectoryListingCache
from .models import DirectoryListing, FileEntry, Phase, ProgressEvent, TaskKey, TransferKind, TransferTask
from .navigation import NavigationStack
from .prompts import Prompts
from .session import SessionManager
from .transfers import TransferTracker
from .utils import get_logger


def _as_start_error(exc: Exception) -> TransferStartError:
    if isinstance(exc, TransferStartError):
        return exc
    wrapped = TransferStartError(str(exc) or exc.__class__.__name__)
    wrapped.__cause__ = exc
    return wrapped


class CloudController(QObject):
    """Session, navigation and transfer state of the desktop client.

    Every mutation goes through the methods below. Views read the properties
    and listen to the signals; they never touch the components directly.

    Call :meth:`start` once the Qt application exists and :meth:`close` on
    teardown, or use the controller as a context manager.
    """

    authenticated_changed = Signal(bool)
    listing_changed = Signal(object)
    busy_changed = Signal(bool)
    transfers_changed = Signal()
    error_raised = Signal(object)
    status_changed = Signal(str)
    share_created = Signal(object)

    def __init__(
        self,
        backend: StorageBackend,
        prompts: Prompts,
        runner: Any = None,
        scheduler: Any = None,
        settings: Optional[Settings] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        settings = settings or Settings.from_env()
        if runner is None:
            from .ui.threads import TaskRunner

            runner = TaskRunner()
        if scheduler is None:
            from .ui.threads import QtScheduler

            scheduler = QtScheduler(self)
        self.logger = get_logger("pancloud.controller")
        self._backend = backend
        self._prompts = prompts
        self._runner = runner
        self._subscription: Optional[Subscription] = None
        self._session = SessionManager(backend, runner)
        self._navigation = NavigationStack()
        self._listing = DirectoryListingCache(backend, runner, on_busy_changed=self.busy_changed.emit)
        self._transfers = TransferTracker(
            backend,
            runner,
            scheduler,
            grace_seconds=settings.grace_seconds,
            on_change=self.transfers_changed.emit,
            on_uploads_drained=self._on_uploads_drained,
        )

    # -- lifetime --------------------------------------------------------

    def start(self) -> "CloudController":
        if self._subscription is None or not self._subscription.active:
            self._subscription = self._backend.events.subscribe(self._on_progress_event)
        return self

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.release()
            self._subscription = None
        self._transfers.close()

    def __enter__(self) -> "CloudController":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- read-only state -------------------------------------------------

    @property
    def authenticated(self) -> bool:
        return self._session.authenticated

    @property
    def username(self) -> Optional[str]:
        return self._session.username

    @property
    def login_busy(self) -> bool:
        return self._session.login_busy

    @property
    def current_directory_id(self) -> int:
        return self._navigation.current_directory_id

    @property
    def navigation(self) -> Tuple[int, ...]:
        return self._navigation.items

    @property
    def can_go_back(self) -> bool:
        return not self._navigation.at_root

    @property
    def listing(self) -> Optional[DirectoryListing]:
        return self._listing.listing

    @property
    def busy(self) -> bool:
        return self._listing.busy

    def transfers(self, kind: Optional[TransferKind] = None) -> Tuple[TransferTask, ...]:
        return self._transfers.tasks(kind)

    def transfer(self, kind: TransferKind, key: TaskKey) -> Optional[TransferTask]:
        return self._transfers.get(kind, key)

    # -- helpers ---------------------------------------------------------

    def _require_auth(self) -> None:
        if not self._session.authenticated:
            raise NotAuthenticatedError("Not logged in")

    def _surface(self, exc: Exception) -> None:
        self.logger.warning("%s: %s", exc.__class__.__name__, exc)
        self.error_raised.emit(exc)
        self.status_changed.emit(f"Error: {exc}")

    def _load_current(self) -> None:
        self._listing.load(
            self._navigation.current_directory_id,
            is_current=lambda directory_id: (
                self._session.authenticated and directory_id == self._navigation.current_directory_id
            ),
            on_loaded=self._on_listing_loaded,
            on_error=self._surface,
        )

    def _on_listing_loaded(self, listing: DirectoryListing) -> None:
        self.listing_changed.emit(listing)
        self.status_changed.emit(f"{len(listing.entries)} item(s) loaded.")

    def _refresh_if_displayed(self, directory_id: int) -> None:
        if self._session.authenticated and directory_id == self._navigation.current_directory_id:
            self._load_current()

    def _run_mutation(
        self,
        fn: Callable[[], Any],
        directory_id: int,
        success_message: str,
    ) -> None:
        def done(_result: Any) -> None:
            self.status_changed.emit(success_message)
            self._refresh_if_displayed(directory_id)

        def failed(exc: Exception) -> None:
            self._surface(_as_start_error(exc))

        self._runner.run(fn, on_result=done, on_error=failed)

    # -- session ---------------------------------------------------------

    def try_auto_login(self) -> bool:
        """True when the session is authenticated on return; a pending attempt
        reports its outcome through ``authenticated_changed``."""
        return self._session.try_auto_login(on_done=self._on_auto_login, on_error=self._surface)

    def _on_auto_login(self, ok: bool) -> None:
        if ok:
            self._open_session("Logged in with saved credentials.")
        else:
            self.status_changed.emit("Please log in.")

    def login(self, username: str, password: str) -> bool:
        self.status_changed.emit("Logging in...")
        return self._session.login(username, password, on_done=self._open_session, on_error=self._surface)

    def _open_session(self, message: str) -> None:
        self._navigation.reset()
        self.authenticated_changed.emit(True)
        self.status_changed.emit(message or "Logged in.")
        self._load_current()

    def logout(self) -> bool:
        self._require_auth()
        if self._session.logout_busy:
            return False
        if not self._prompts.confirm("Logout", "Log out and forget the saved credentials?"):
            return False
        return self._session.logout(on_done=self._on_logged_out, on_error=self._surface)

    def _on_logged_out(self) -> None:
        self._navigation.reset()
        self._listing.clear()
        self.authenticated_changed.emit(False)
        self.listing_changed.emit(None)
        self.status_changed.emit("Logged out.")

    # -- navigation ------------------------------------------------------

    def enter(self, directory_id: int) -> None:
        self._require_auth()
        self._navigation.enter(directory_id)
        self._transfers.dismiss_failed()
        self._load_current()

    def open_entry(self, entry: FileEntry) -> bool:
        if not entry.is_directory:
            return False
        self.enter(entry.id)
        return True

    def go_back(self) -> bool:
        self._require_auth()
        if not self._navigation.go_back():
            return False
        self._transfers.dismiss_failed()
        self._load_current()
        return True

    def refresh(self) -> None:
        self._require_auth()
        self._load_current()

    # -- transfers -------------------------------------------------------

    @Slot(object)
    def _on_progress_event(self, event: ProgressEvent) -> None:
        task = self._transfers.apply(event)
        if task.phase == Phase.FAILED:
            self.status_changed.emit(f"Transfer failed: {task.display_name}: {task.error or 'unknown error'}")
        elif task.phase == Phase.FINISHED:
            self.status_changed.emit(f"Transfer finished: {task.display_name}")

    def _on_uploads_drained(self) -> None:
        if self._session.authenticated:
            self._load_current()

    def download(self, entry: FileEntry, destination_path: Optional[str] = None) -> bool:
        self._require_auth()
        if destination_path is None:
            destination_path = self._prompts.choose_save_path(entry.name)
            if not destination_path:
                return False
        try:
            self._transfers.start_download(entry, destination_path, on_error=self._surface)
        except TransferStartError as exc:
            self._surface(exc)
            return False
        return True

    def upload(self, source_path: Optional[str] = None, target_directory_id: Optional[int] = None) -> bool:
        self._require_auth()
        if source_path is None:
            source_path = self._prompts.choose_open_path()
            if not source_path:
                return False
        if target_directory_id is None:
            target_directory_id = self._navigation.current_directory_id
        try:
            self._transfers.start_upload(source_path, target_directory_id, on_error=self._surface)
        except TransferStartError as exc:
            self._surface(exc)
            return False
        return True

    def dismiss_transfer(self, kind: TransferKind, key: TaskKey) -> bool:
        return self._transfers.dismiss(kind, key)

    # -- mutations -------------------------------------------------------

    def create_folder(self, name: Optional[str] = None) -> bool:
        self._require_auth()
        if name is None:
            name = self._prompts.ask_text("New folder", "Folder name:")
        name = (name or "").strip()
        if not name:
            return False
        parent_id = self._navigation.current_directory_id
        self._run_mutation(
            lambda: self._backend.create_folder(parent_id, name),
            parent_id,
            f"Folder {name} created.",
        )
        return True

    def delete(self, entry: FileEntry) -> bool:
        self._require_auth()
        if not self._prompts.confirm("Delete", f"Move {entry.name} to the trash?"):
            return False
        self._run_mutation(
            lambda: self._backend.delete_file(entry.id),
            self._navigation.current_directory_id,
            f"{entry.name} moved to trash.",
        )
        return True

    def share(self, entries: Sequence[FileEntry], password: Optional[str] = None) -> bool:
        self._require_auth()
        file_ids = [entry.id for entry in entries]
        if not file_ids:
            self._surface(TransferStartError("No file selected"))
            return False
        if password is None:
            password = self._prompts.ask_text("Share", "Password (leave empty for none):")
            if password is None:
                return False

        def work():
            return self._backend.share_files(file_ids, password or None)

        def failed(exc: Exception) -> None:
            self._surface(_as_start_error(exc))

        def done(result: Any) -> None:
            self.status_changed.emit(f"Share link: {result.share_url}")
            self.share_created.emit(result)

        self._runner.run(work, on_result=done, on_error=failed)
        return True
