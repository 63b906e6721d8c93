"""Archive builder for module zip files.

Packages a module's source directory into the zip layout served by a
module proxy: every entry is prefixed with '<module-path>@<version>/' and
file metadata is normalized so the same tree always produces the same
archive.
"""

import logging
import os
import shutil
import stat
import zipfile
from pathlib import Path
from typing import Dict, List, Tuple, Union

from installas.module import ModuleVersion, ValidationError, check_file_path
from installas.proxy.errors import ArchiveError, ProxyIOError

logger = logging.getLogger(__name__)

# Size limits enforced by the Go toolchain when extracting module zips
MAX_ZIP_FILE = 500 << 20
MAX_GO_MOD = 16 << 20
MAX_LICENSE = 16 << 20

VCS_DIRS = frozenset({".bzr", ".git", ".hg", ".svn"})

# Earliest timestamp a zip entry can carry
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
FILE_MODE = 0o644


def is_vendored_package(name: str) -> bool:
    """Report whether a slash-separated path is inside a vendored package.

    Files directly in the top-level vendor directory (such as
    vendor/modules.txt) are not part of a vendored package. For a vendor
    directory deeper in the tree the remainder is taken from a fixed offset
    of len('/vendor/') rather than from the match, so 'sub/vendor/x.go'
    counts as vendored too. Published module zips and their h1 hashes
    depend on that offset.

    Examples:
        >>> is_vendored_package('vendor/example.com/dep/dep.go')
        True
        >>> is_vendored_package('vendor/modules.txt')
        False
        >>> is_vendored_package('sub/vendor/x/y.go')
        True
        >>> is_vendored_package('sub/vendor/x.go')
        True
    """
    if name.startswith("vendor/"):
        offset = len("vendor/")
    elif "/vendor/" in name:
        offset = len("/vendor/")
    else:
        return False
    return "/" in name[offset:]


class ArchiveBuilder:
    """Builds deterministic module zips from a source directory.

    Files are excluded as the module zip format requires:
    - VCS metadata directories (.git, .hg, .svn, .bzr)
    - Nested modules (subdirectories with their own go.mod)
    - Vendored packages
    - Anything that is not a regular file (symlinks, devices, sockets)

    Kept file names must be valid module file paths; a tree holding a name
    such as "it's.txt" or "aux.go" is refused before anything is written.

    Examples:
        >>> builder = ArchiveBuilder()
        >>> mv = ModuleVersion.create('example.com/foo', 'v1.0.0')
        >>> builder.build(mv, '/src/foo', '/tmp/proxy/example.com/foo/@v/v1.0.0.zip')
    """

    def __init__(self, compression: int = zipfile.ZIP_DEFLATED):
        self.compression = compression

    def collect_files(self, source_dir: Union[str, Path]) -> List[Tuple[str, Path]]:
        """List the files that belong in the module zip.

        Args:
            source_dir: Module root directory

        Returns:
            Sorted list of (slash-separated relative name, absolute path)

        Raises:
            ProxyIOError: If the directory cannot be read
            ArchiveError: If a file name is not a valid module file path or
                two files collide case-insensitively
        """
        root = Path(source_dir)
        if not root.is_dir():
            raise ProxyIOError("source directory does not exist or is not a directory", root)

        files: List[Tuple[str, Path]] = []

        def on_error(err: OSError) -> None:
            raise ProxyIOError(f"cannot read source directory: {err.strerror}", err.filename)

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            current = Path(dirpath)
            kept_dirs = []
            for name in sorted(dirnames):
                child = current / name
                if name in VCS_DIRS:
                    logger.debug(f"Skipping VCS directory {child}")
                    continue
                if child.is_symlink():
                    logger.debug(f"Skipping symlinked directory {child}")
                    continue
                go_mod = child / "go.mod"
                if go_mod.exists() and not go_mod.is_dir():
                    logger.debug(f"Skipping nested module {child}")
                    continue
                kept_dirs.append(name)
            dirnames[:] = kept_dirs

            for name in sorted(filenames):
                path = current / name
                rel = path.relative_to(root).as_posix()
                try:
                    mode = path.lstat().st_mode
                except FileNotFoundError as e:
                    raise ProxyIOError("file disappeared while archiving", path) from e
                if not stat.S_ISREG(mode):
                    logger.debug(f"Skipping irregular file {rel}")
                    continue
                if is_vendored_package(rel):
                    logger.debug(f"Skipping vendored file {rel}")
                    continue
                files.append((rel, path))

        files.sort(key=lambda item: item[0])
        self._check_file_names(files)
        self._check_collisions(files)
        return files

    @staticmethod
    def _check_file_names(files: List[Tuple[str, Path]]) -> None:
        for rel, _ in files:
            try:
                check_file_path(rel)
            except ValidationError as e:
                raise ArchiveError(str(e)) from e

    @staticmethod
    def _check_collisions(files: List[Tuple[str, Path]]) -> None:
        seen: Dict[str, str] = {}
        for rel, _ in files:
            parts = rel.split("/")
            # Check the file and each directory above it
            for i in range(1, len(parts) + 1):
                name = "/".join(parts[:i])
                folded = name.lower()
                previous = seen.setdefault(folded, name)
                if previous != name:
                    raise ArchiveError(
                        f"case-insensitive file name collision: {previous!r} and {name!r}"
                    )

    @staticmethod
    def _check_sizes(files: List[Tuple[str, Path]]) -> None:
        total = 0
        for rel, path in files:
            try:
                size = path.stat().st_size
            except FileNotFoundError as e:
                raise ProxyIOError("file disappeared while archiving", path) from e
            if rel == "go.mod" and size > MAX_GO_MOD:
                raise ArchiveError(f"go.mod file too large (max size is {MAX_GO_MOD} bytes)")
            if rel == "LICENSE" and size > MAX_LICENSE:
                raise ArchiveError(f"LICENSE file too large (max size is {MAX_LICENSE} bytes)")
            total += size
            if total > MAX_ZIP_FILE:
                raise ArchiveError(
                    f"total size of files in module exceeds {MAX_ZIP_FILE} bytes"
                )

    def build(
        self,
        module: ModuleVersion,
        source_dir: Union[str, Path],
        dest: Union[str, Path],
    ) -> Path:
        """Write the module zip for module to dest.

        The archive is written to a staging file next to dest and renamed
        into place once complete.

        Args:
            module: Module identity used for the entry prefix
            source_dir: Module root directory
            dest: Destination zip path

        Returns:
            Path of the written archive

        Raises:
            ProxyIOError: If the source cannot be read or the zip cannot be written
            ArchiveError: If the source tree violates the module zip format
        """
        dest = Path(dest)
        files = self.collect_files(source_dir)
        self._check_sizes(files)

        staging = dest.with_suffix(dest.suffix + ".tmp")
        try:
            with zipfile.ZipFile(staging, "w", compression=self.compression) as zf:
                for rel, path in files:
                    info = zipfile.ZipInfo(module.zip_prefix + rel, date_time=ZIP_EPOCH)
                    info.compress_type = self.compression
                    info.external_attr = (stat.S_IFREG | FILE_MODE) << 16
                    try:
                        with open(path, "rb") as src, zf.open(info, "w") as dst:
                            shutil.copyfileobj(src, dst)
                    except FileNotFoundError as e:
                        raise ProxyIOError("file disappeared while archiving", path) from e
            os.replace(staging, dest)
        except ProxyIOError:
            self._discard(staging)
            raise
        except OSError as e:
            logger.error(f"Error writing module zip {dest}: {e}")
            self._discard(staging)
            raise ProxyIOError(f"cannot write module zip: {e.strerror or e}", dest) from e

        logger.debug(f"Wrote {len(files)} files to {dest}")
        return dest

    @staticmethod
    def _discard(staging: Path) -> None:
        if staging.exists():
            try:
                staging.unlink()
            except OSError as e:
                logger.warning(f"Failed to clean up staging file {staging}: {e}")
