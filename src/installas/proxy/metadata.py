"""Metadata writer for the per-version proxy descriptor files.

For a module version the proxy serves, alongside the zip:
- @v/list: newline-delimited published versions (append-only)
- @v/<version>.mod: the module's go.mod, verbatim
- @v/<version>.info: {"Version": ..., "Time": ...}
- @latest: same as .info, only for pseudo-versions, because the latest
  query reads a different path than the explicit-version endpoint
"""

import hashlib
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

import orjson
from filelock import FileLock, Timeout

from installas.module import ModuleVersion
from installas.proxy.errors import (
    MissingManifestError,
    ProxyIOError,
    ProxyLockError,
)
from installas.utils import (
    INFO_SUFFIX,
    LATEST_FILE,
    LIST_FILE,
    LOCK_DIR,
    MANIFEST_FILE,
    MOD_SUFFIX,
    VERSION_DIR,
    VersionInfo,
    format_rfc3339,
    version_file,
)

logger = logging.getLogger(__name__)


def write_file_atomic(path: Union[str, Path], data: bytes) -> Path:
    """Write data to path via a staging file and rename.

    Raises:
        ProxyIOError: If the file cannot be written
    """
    path = Path(path)
    staging = path.with_name(path.name + ".tmp")
    try:
        with open(staging, "wb") as f:
            f.write(data)
        os.replace(staging, path)
    except OSError as e:
        logger.error(f"Error writing {path}: {e}")
        if staging.exists():
            try:
                staging.unlink()
            except OSError as cleanup_error:
                logger.warning(f"Failed to clean up staging file {staging}: {cleanup_error}")
        raise ProxyIOError(f"cannot write file: {e.strerror or e}", path) from e
    logger.debug(f"Wrote {path}")
    return path


def render_info(version: str, now: Optional[datetime] = None) -> bytes:
    """Render the .info record for version.

    The layout matches what the Go toolchain's own file proxy emits;
    string values are JSON-escaped.

    Examples:
        >>> from datetime import timezone
        >>> render_info('v1.0.0', datetime(2024, 1, 15, tzinfo=timezone.utc))
        b'{"Version": "v1.0.0", "Time":"2024-01-15T00:00:00Z"}'
    """
    encoded_version = orjson.dumps(version).decode("utf-8")
    encoded_time = orjson.dumps(format_rfc3339(now)).decode("utf-8")
    return f'{{"Version": {encoded_version}, "Time":{encoded_time}}}'.encode("utf-8")


def read_info(path: Union[str, Path]) -> VersionInfo:
    """Read a .info or @latest file.

    Raises:
        ProxyIOError: If the file cannot be read or is not a version record
    """
    path = Path(path)
    try:
        data = orjson.loads(path.read_bytes())
    except OSError as e:
        raise ProxyIOError(f"cannot read version info: {e.strerror or e}", path) from e
    except orjson.JSONDecodeError as e:
        raise ProxyIOError(f"malformed version info: {e}", path) from e

    if not isinstance(data, dict) or not isinstance(data.get("Version"), str):
        raise ProxyIOError("version info has no Version field", path)
    return VersionInfo(Version=data["Version"], Time=data.get("Time", ""))


def read_manifest(source_dir: Union[str, Path]) -> bytes:
    """Read the go.mod file of a module source directory.

    Raises:
        MissingManifestError: If the directory has no go.mod
        ProxyIOError: If go.mod exists but cannot be read
    """
    manifest_path = Path(source_dir) / MANIFEST_FILE
    try:
        return manifest_path.read_bytes()
    except FileNotFoundError as e:
        raise MissingManifestError("module source directory has no go.mod", manifest_path) from e
    except IsADirectoryError as e:
        raise MissingManifestError("go.mod is a directory", manifest_path) from e
    except OSError as e:
        raise ProxyIOError(f"cannot read go.mod: {e.strerror or e}", manifest_path) from e


def read_version_list(version_dir: Union[str, Path]) -> List[str]:
    """Return the versions recorded in an @v/list file (empty if absent)."""
    list_path = Path(version_dir) / LIST_FILE
    if not list_path.exists():
        return []
    try:
        text = list_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ProxyIOError(f"cannot read version list: {e.strerror or e}", list_path) from e
    return [line.strip() for line in text.splitlines() if line.strip()]


class MetadataWriter:
    """Writes the descriptor files of one module version.

    Appends to the version list are serialized with a file lock kept under
    '<root>/.locks', so materializations sharing a root cannot interleave.

    Examples:
        >>> writer = MetadataWriter('/tmp/proxy')
        >>> mv = ModuleVersion.create('example.com/foo', 'v1.0.0')
        >>> info = writer.write_descriptors(module_dir, mv, b'module example.com/foo\\n')
        >>> writer.append_version(module_dir / '@v', mv.version)
    """

    def __init__(self, root: Union[str, Path], lock_timeout: float = 30.0):
        """Initialize metadata writer.

        Args:
            root: Proxy root directory
            lock_timeout: Seconds to wait for the version list lock
        """
        self.root = Path(root)
        self.lock_dir = self.root / LOCK_DIR
        self.lock_timeout = lock_timeout

    def _get_lock_path(self, version_dir: Path) -> Path:
        # One lock per version list; fixed-length name whatever the path depth
        digest = hashlib.sha256(str(version_dir.resolve()).encode("utf-8")).hexdigest()
        return self.lock_dir / f"{digest[:16]}.lock"

    def append_version(self, version_dir: Union[str, Path], version: str) -> Path:
        """Append version to the version list, creating it if absent.

        A version already present is not repeated.

        Raises:
            ProxyIOError: If the list cannot be written
            ProxyLockError: If the list lock cannot be acquired
        """
        version_dir = Path(version_dir)
        list_path = version_dir / LIST_FILE

        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ProxyIOError(f"cannot create lock directory: {e.strerror or e}", self.lock_dir) from e

        lock_path = self._get_lock_path(version_dir)
        lock = FileLock(str(lock_path), timeout=self.lock_timeout)
        try:
            lock.acquire()
        except Timeout as e:
            raise ProxyLockError(f"Could not acquire lock for {list_path}") from e
        except OSError as e:
            logger.error(f"Error acquiring lock {lock_path}: {e}")
            raise ProxyIOError(f"cannot create lock file: {e.strerror or e}", lock_path) from e

        try:
            if version in read_version_list(version_dir):
                logger.debug(f"{version} already listed in {list_path}")
                return list_path
            with open(list_path, "a", encoding="utf-8", newline="\n") as f:
                f.write(version + "\n")
        except ProxyIOError:
            raise
        except OSError as e:
            logger.error(f"Error appending to version list: {e}")
            raise ProxyIOError(f"cannot append to version list: {e.strerror or e}", list_path) from e
        finally:
            lock.release()

        logger.debug(f"Listed {version} in {list_path}")
        return list_path

    def write_mod(self, version_dir: Union[str, Path], module: ModuleVersion, manifest: bytes) -> Path:
        """Copy the manifest verbatim to <version>.mod."""
        path = version_file(version_dir, module.escaped_version, MOD_SUFFIX)
        return write_file_atomic(path, manifest)

    def write_info(
        self,
        version_dir: Union[str, Path],
        module: ModuleVersion,
        now: Optional[datetime] = None,
    ) -> bytes:
        """Write <version>.info and return its contents."""
        info = render_info(module.version, now)
        write_file_atomic(version_file(version_dir, module.escaped_version, INFO_SUFFIX), info)
        return info

    def write_latest(self, module_dir: Union[str, Path], info: bytes) -> Path:
        """Write the @latest file with the given .info contents."""
        return write_file_atomic(Path(module_dir) / LATEST_FILE, info)

    def write_descriptors(
        self,
        module_dir: Union[str, Path],
        module: ModuleVersion,
        manifest: bytes,
        now: Optional[datetime] = None,
    ) -> bytes:
        """Write .mod, .info and (for pseudo-versions) @latest.

        The version list is left untouched; call append_version once the
        version's archive exists as well.

        Args:
            module_dir: Directory for the escaped module path
            module: Module version being published
            manifest: go.mod contents
            now: Timestamp for the info record (defaults to now)

        Returns:
            The .info contents
        """
        version_dir = Path(module_dir) / VERSION_DIR
        self.write_mod(version_dir, module, manifest)
        info = self.write_info(version_dir, module, now)
        if module.is_pseudo:
            self.write_latest(module_dir, info)
        return info
