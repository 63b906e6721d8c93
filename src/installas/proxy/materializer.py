"""Proxy materializer: publishes one module version into a file-based proxy."""

import logging
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from installas.module import ModuleVersion
from installas.proxy.archive import ArchiveBuilder
from installas.proxy.checksum import go_sum_lines, hash_go_mod, hash_zip
from installas.proxy.errors import ProxyIOError
from installas.proxy.metadata import MetadataWriter, read_info, read_manifest
from installas.utils import (
    INFO_SUFFIX,
    LATEST_FILE,
    LIST_FILE,
    MOD_SUFFIX,
    TEMP_DIR_PREFIX,
    VERSION_DIR,
    ZIP_SUFFIX,
    VersionInfo,
    version_file,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaterializedVersion:
    """Result of publishing a module version into a proxy directory.

    Attributes:
        module: The published module version
        root: Proxy root directory (what GOPROXY points at)
        module_dir: <root>/<escaped-module-path>
        info: Parsed contents of the .info file
        zip_hash: h1 hash of the module zip
        mod_hash: h1 hash of the go.mod file
    """

    module: ModuleVersion
    root: Path
    module_dir: Path
    info: VersionInfo
    zip_hash: str
    mod_hash: str

    @property
    def version_dir(self) -> Path:
        return self.module_dir / VERSION_DIR

    @property
    def list_path(self) -> Path:
        return self.version_dir / LIST_FILE

    @property
    def mod_path(self) -> Path:
        return version_file(self.version_dir, self.module.escaped_version, MOD_SUFFIX)

    @property
    def info_path(self) -> Path:
        return version_file(self.version_dir, self.module.escaped_version, INFO_SUFFIX)

    @property
    def zip_path(self) -> Path:
        return version_file(self.version_dir, self.module.escaped_version, ZIP_SUFFIX)

    @property
    def latest_path(self) -> Optional[Path]:
        """Path of @latest, or None when the version is not a pseudo-version."""
        if not self.module.is_pseudo:
            return None
        return self.module_dir / LATEST_FILE

    @property
    def go_sum(self) -> List[str]:
        return go_sum_lines(self.module, self.zip_hash, self.mod_hash)


class ProxyMaterializer:
    """Populates a module proxy directory for exactly one module version.

    The proxy root is created on first use with a process-unique name in
    the system temp directory (or temp_dir) unless an explicit root is
    given. It is never removed: it must outlive the installer run that
    reads it, and reclaiming it is left to the host's temp cleanup.

    Examples:
        >>> materializer = ProxyMaterializer()
        >>> result = materializer.materialize('example.com/foo', 'v1.0.0', '/src/foo')
        >>> result.root
        PosixPath('/tmp/installas-abc123')
    """

    def __init__(
        self,
        root: Optional[Union[str, Path]] = None,
        temp_dir: Optional[Union[str, Path]] = None,
        archive_builder: Optional[ArchiveBuilder] = None,
    ):
        """Initialize proxy materializer.

        Args:
            root: Existing proxy root to publish into. If None, a fresh
                temporary directory is created on first use.
            temp_dir: Parent directory for the temporary root
            archive_builder: Archive builder to use (default ArchiveBuilder())
        """
        self._root = Path(root) if root is not None else None
        self.temp_dir = Path(temp_dir) if temp_dir is not None else None
        self.archive_builder = archive_builder or ArchiveBuilder()

    @property
    def root(self) -> Path:
        """Proxy root directory, created on first access."""
        if self._root is None:
            try:
                created = tempfile.mkdtemp(
                    prefix=TEMP_DIR_PREFIX,
                    dir=str(self.temp_dir) if self.temp_dir is not None else None,
                )
            except OSError as e:
                raise ProxyIOError(
                    f"cannot create proxy directory: {e.strerror or e}", self.temp_dir
                ) from e
            self._root = Path(created)
            logger.debug(f"Created proxy root {self._root}")
        return self._root

    def module_dir(self, module: ModuleVersion) -> Path:
        """Return <root>/<escaped-module-path> for module."""
        return self.root.joinpath(*module.escaped_path.split("/"))

    def materialize(
        self,
        module_path: str,
        version: str,
        source_dir: Union[str, Path],
        now: Optional[datetime] = None,
    ) -> MaterializedVersion:
        """Publish module_path@version from source_dir into the proxy root.

        go.mod is read before anything is written. The zip, .mod, .info and
        @latest files are each written atomically; the version is added to
        the list last, so a failure never leaves the list naming a version
        whose files are missing.

        Args:
            module_path: Module path (e.g. 'example.com/foo')
            version: Version to publish (e.g. 'v1.0.0')
            source_dir: Module root directory
            now: Timestamp for the .info record (defaults to now)

        Returns:
            MaterializedVersion describing the published files

        Raises:
            ValidationError: If the module path or version is malformed
            MissingManifestError: If source_dir has no go.mod
            ProxyIOError: If any file cannot be read or written
            ArchiveError: If the source tree is not a valid module zip
        """
        module = ModuleVersion.create(module_path, version)
        source_dir = Path(source_dir)

        manifest = read_manifest(source_dir)

        module_dir = self.module_dir(module)
        version_dir = module_dir / VERSION_DIR
        try:
            version_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Error creating proxy directory {version_dir}: {e}")
            raise ProxyIOError(
                f"cannot create proxy directory: {e.strerror or e}", version_dir
            ) from e

        zip_path = version_file(version_dir, module.escaped_version, ZIP_SUFFIX)
        self.archive_builder.build(module, source_dir, zip_path)

        writer = MetadataWriter(self.root)
        writer.write_descriptors(module_dir, module, manifest, now)
        writer.append_version(version_dir, module.version)

        result = MaterializedVersion(
            module=module,
            root=self.root,
            module_dir=module_dir,
            info=read_info(version_file(version_dir, module.escaped_version, INFO_SUFFIX)),
            zip_hash=hash_zip(zip_path),
            mod_hash=hash_go_mod(manifest),
        )
        logger.info(f"Published {module} to {self.root}")
        return result
