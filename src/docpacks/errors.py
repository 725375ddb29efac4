"""Exception hierarchy for documentation packs."""

from __future__ import annotations


class DocsError(Exception):
    """Base error; carries the coordinates of the pack involved, if known."""

    def __init__(self, message: str, *, db: str | None = None, version: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.db = db
        self.version = version

    def with_pack(self, db: str, version: str) -> "DocsError":
        if self.db is None:
            self.db = db
        if self.version is None:
            self.version = version
        return self

    def __str__(self) -> str:
        if self.db and self.version:
            return f"[{self.db} {self.version}] {self.message}"
        if self.db:
            return f"[{self.db}] {self.message}"
        return self.message


class DownloadError(DocsError):
    """Transport failure or non-success HTTP response."""


class DecompressError(DocsError):
    """A compressed download could not be decoded."""


class ParseError(DocsError):
    """A single page, entry or section could not be normalized."""


class AlreadyInstalledError(DocsError):
    pass


class InstallInProgressError(DocsError):
    """Another install holds the lock marker for the same pack."""


class LicenseNotAcceptedError(DocsError):
    pass


class InstallError(DocsError):
    """Unexpected failure while installing (I/O and the like)."""


class PackNotFoundError(DocsError):
    pass


class DocNotFoundError(DocsError):
    pass


class ManifestIOError(DocsError):
    """Manifest is missing, unreadable or malformed."""


class PackIndexError(DocsError):
    """Base for full-text index failures."""


class IndexBuildError(PackIndexError):
    pass


class IndexOpenError(PackIndexError):
    pass


class QueryError(PackIndexError):
    pass
