"""Exceptions raised while materializing a module proxy directory."""

from pathlib import Path
from typing import Optional, Union


class ProxyError(Exception):
    """Base exception for proxy materialization errors."""

    pass


class ProxyIOError(ProxyError, OSError):
    """Raised when a proxy file cannot be read or written.

    Attributes:
        path: The file or directory the failing operation targeted
    """

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None

    def __str__(self) -> str:
        message = self.args[0] if self.args else ""
        if self.path is not None:
            return f"{message} ({self.path})"
        return message


class MissingManifestError(ProxyIOError):
    """Raised when the source directory has no go.mod file."""

    pass


class ArchiveError(ProxyError):
    """Raised when a source tree cannot be packaged as a module zip."""

    pass


class ProxyLockError(ProxyError):
    """Raised when the version list lock cannot be acquired."""

    pass
