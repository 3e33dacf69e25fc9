from typing import Any, Callable, Optional

from .backend import StorageBackend
from .errors import ListingError
from .models import DirectoryListing
from .utils import get_logger


def _as_listing_error(exc: Exception) -> ListingError:
    if isinstance(exc, ListingError):
        return exc
    wrapped = ListingError(str(exc) or exc.__class__.__name__)
    wrapped.__cause__ = exc
    return wrapped


class DirectoryListingCache:
    """The listing of the displayed directory, replaced wholesale on every load.

    Each load gets a generation number. A completion is applied only when it
    belongs to the most recent load and its directory is still the one on
    display, so a slow fetch for a directory the user already left is dropped.
    """

    def __init__(
        self,
        backend: StorageBackend,
        runner: Any,
        on_busy_changed: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self._backend = backend
        self._runner = runner
        self._on_busy_changed = on_busy_changed or (lambda _busy: None)
        self._listing: Optional[DirectoryListing] = None
        self._generation = 0
        self._busy = False
        self.logger = get_logger("pancloud.listing")

    @property
    def listing(self) -> Optional[DirectoryListing]:
        return self._listing

    @property
    def busy(self) -> bool:
        return self._busy

    def _set_busy(self, busy: bool) -> None:
        if busy != self._busy:
            self._busy = busy
            self._on_busy_changed(busy)

    def load(
        self,
        directory_id: int,
        is_current: Callable[[int], bool],
        on_loaded: Callable[[DirectoryListing], None],
        on_error: Callable[[ListingError], None],
    ) -> None:
        self._generation += 1
        generation = self._generation
        self._set_busy(True)

        def done(entries: Any) -> None:
            if generation != self._generation:
                self.logger.debug("Dropping superseded listing of %s", directory_id)
                return
            self._set_busy(False)
            if not is_current(directory_id):
                self.logger.debug("Dropping listing of %s, no longer displayed", directory_id)
                return
            self._listing = DirectoryListing.of(directory_id, entries or ())
            self.logger.debug("Listing of %s: %d entries", directory_id, len(self._listing.entries))
            on_loaded(self._listing)

        def failed(exc: Exception) -> None:
            if generation != self._generation:
                self.logger.debug("Ignoring failure of superseded listing %s: %s", directory_id, exc)
                return
            self._set_busy(False)
            self.logger.warning("Listing of %s failed: %s", directory_id, exc)
            on_error(_as_listing_error(exc))

        self._runner.run(lambda: self._backend.list_directory(directory_id), on_result=done, on_error=failed)

    def clear(self) -> None:
        self._generation += 1
        self._listing = None
        self._set_busy(False)
