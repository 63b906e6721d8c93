"""File-based module proxy for a single synthetic module version.

This package builds a directory that satisfies the module proxy file
layout for one module@version, so the Go toolchain can fetch it through
a file:// GOPROXY entry.

Key components:
- ArchiveBuilder: Deterministic module zip creation
- MetadataWriter: list, .mod, .info and @latest files
- ProxyMaterializer: Orchestrates both under a temporary root
"""

from installas.proxy.archive import ArchiveBuilder
from installas.proxy.errors import (
    ArchiveError,
    MissingManifestError,
    ProxyError,
    ProxyIOError,
    ProxyLockError,
)
from installas.proxy.materializer import MaterializedVersion, ProxyMaterializer
from installas.proxy.metadata import MetadataWriter

__all__ = [
    "ArchiveBuilder",
    "MetadataWriter",
    "ProxyMaterializer",
    "MaterializedVersion",
    "ProxyError",
    "ProxyIOError",
    "ProxyLockError",
    "MissingManifestError",
    "ArchiveError",
]
