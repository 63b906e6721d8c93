"""Module checksums in the go.sum 'h1:' format.

The h1 hash of a set of files is the base64-encoded SHA-256 of a summary
listing each file's SHA-256 and name, one per line, sorted by name.
"""

import base64
import hashlib
import zipfile
from pathlib import Path
from typing import Callable, Iterable, List, Union

from installas.module import ModuleVersion


def _sha256_stream(read_chunk: Callable[[int], bytes]) -> str:
    hasher = hashlib.sha256()
    # Read in chunks to handle large files
    while chunk := read_chunk(8192):
        hasher.update(chunk)
    return hasher.hexdigest()


def hash1(names: Iterable[str], open_fn: Callable[[str], object]) -> str:
    """Compute the h1 hash of the named files.

    Args:
        names: File names to include
        open_fn: Callable returning a readable binary file object for a name

    Returns:
        Hash string of the form 'h1:<base64>'

    Raises:
        ValueError: If a file name contains a newline
    """
    summary = hashlib.sha256()
    for name in sorted(names):
        if "\n" in name:
            raise ValueError(f"dirhash: filenames with newlines are not supported: {name!r}")
        with open_fn(name) as f:
            digest = _sha256_stream(f.read)
        summary.update(f"{digest}  {name}\n".encode("utf-8"))
    return "h1:" + base64.b64encode(summary.digest()).decode("ascii")


def hash_zip(zip_path: Union[str, Path]) -> str:
    """Compute the h1 hash of every file entry in a module zip.

    Examples:
        >>> hash_zip('/tmp/proxy/example.com/foo/@v/v1.0.0.zip')  # doctest: +SKIP
        'h1:...'
    """
    with zipfile.ZipFile(zip_path) as zf:
        names = [info.filename for info in zf.infolist() if not info.is_dir()]
        return hash1(names, zf.open)


def hash_go_mod(manifest: bytes) -> str:
    """Compute the h1 hash recorded in go.sum for a version's go.mod."""
    import io

    return hash1(["go.mod"], lambda _name: io.BytesIO(manifest))


def go_sum_lines(module: ModuleVersion, zip_hash: str, mod_hash: str) -> List[str]:
    """Return the two go.sum lines describing module.

    Examples:
        >>> mv = ModuleVersion('example.com/foo', 'v1.0.0')
        >>> go_sum_lines(mv, 'h1:a=', 'h1:b=')
        ['example.com/foo v1.0.0 h1:a=', 'example.com/foo v1.0.0/go.mod h1:b=']
    """
    return [
        f"{module.path} {module.version} {zip_hash}",
        f"{module.path} {module.version}/go.mod {mod_hash}",
    ]
