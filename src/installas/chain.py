"""Proxy chain composition.

Puts a materialized proxy directory in front of the existing GOPROXY
chain and exempts the module from checksum database verification, since
the synthetic archive's hash will not match any published entry.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path, PurePath
from typing import Dict, Mapping, Optional, Union
from urllib.parse import quote

GOPROXY = "GOPROXY"
GONOSUMDB = "GONOSUMDB"
GOPRIVATE = "GOPRIVATE"

DEFAULT_GOPROXY = "https://proxy.golang.org,direct"


def merge_value(existing: Optional[str], addition: str, default: str = "") -> str:
    """Prepend addition to a comma-separated list.

    Args:
        existing: Current value (None or '' means unset)
        addition: Entry to put first
        default: Value to use in place of an unset existing value

    Returns:
        'addition,existing-or-default', or just addition if both are empty

    Examples:
        >>> merge_value(None, 'file:///tmp/p', 'https://proxy.golang.org,direct')
        'file:///tmp/p,https://proxy.golang.org,direct'
        >>> merge_value('', 'example.com/foo')
        'example.com/foo'
        >>> merge_value('corp.example.com', 'example.com/foo')
        'example.com/foo,corp.example.com'
    """
    base = existing or default
    if not base:
        return addition
    return f"{addition},{base}"


def to_file_url(path: Union[str, PurePath]) -> str:
    """Return the file:// URL of a proxy directory.

    The URL path always uses forward slashes and starts with '/', so a
    Windows path like C:\\tmp\\proxy becomes file:///C:/tmp/proxy.

    Examples:
        >>> to_file_url('/tmp/installas-abc')
        'file:///tmp/installas-abc'
        >>> from pathlib import PureWindowsPath
        >>> to_file_url(PureWindowsPath('C:\\\\tmp\\\\proxy dir'))
        'file:///C:/tmp/proxy%20dir'
    """
    if isinstance(path, PurePath):
        slashed = path.as_posix()
    else:
        slashed = path.replace(os.sep, "/")
    if not slashed.startswith("/"):
        slashed = "/" + slashed
    return "file://" + quote(slashed, safe="/:~")


@dataclass(frozen=True)
class ProxyEnvironment:
    """Module download settings handed to the installer subprocess.

    Instances are built from an environment mapping and passed explicitly
    to the subprocess launcher; the process environment is never modified.

    Attributes:
        goproxy: GOPROXY value (None if unset)
        gonosumdb: GONOSUMDB value (None if unset)
        goprivate: GOPRIVATE value, used as GONOSUMDB when that is unset

    Examples:
        >>> env = ProxyEnvironment.from_env({'GOPRIVATE': 'corp.example.com'})
        >>> env = env.with_module('/tmp/installas-abc', 'example.com/foo')
        >>> env.goproxy
        'file:///tmp/installas-abc,https://proxy.golang.org,direct'
        >>> env.gonosumdb
        'example.com/foo,corp.example.com'
    """

    goproxy: Optional[str] = None
    gonosumdb: Optional[str] = None
    goprivate: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProxyEnvironment":
        """Read GOPROXY, GONOSUMDB and GOPRIVATE from environ (default os.environ)."""
        if environ is None:
            environ = os.environ
        return cls(
            goproxy=environ.get(GOPROXY),
            gonosumdb=environ.get(GONOSUMDB),
            goprivate=environ.get(GOPRIVATE),
        )

    def with_module(self, proxy_root: Union[str, Path], module_path: str) -> "ProxyEnvironment":
        """Return settings that consult proxy_root first for module_path.

        Args:
            proxy_root: Materialized proxy directory
            module_path: Module to exempt from checksum verification

        Returns:
            New ProxyEnvironment
        """
        return replace(
            self,
            goproxy=merge_value(self.goproxy, to_file_url(proxy_root), DEFAULT_GOPROXY),
            gonosumdb=merge_value(self.gonosumdb or self.goprivate, module_path),
        )

    def apply(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Return a copy of environ with these settings applied.

        Unset settings are left as they are in environ.
        """
        if environ is None:
            environ = os.environ
        merged = dict(environ)
        if self.goproxy is not None:
            merged[GOPROXY] = self.goproxy
        if self.gonosumdb is not None:
            merged[GONOSUMDB] = self.gonosumdb
        return merged
