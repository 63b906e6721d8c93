"""Module identity: path and version validation, escaping, pseudo-versions.

This module implements the subset of the Go module path and semantic
version rules needed to publish a single module version through a
file-based module proxy.
"""

import re
from dataclasses import dataclass
from typing import Tuple


class ValidationError(ValueError):
    """Raised when a module path, version, or install target is malformed."""

    pass


_NUM = r"(?:0|[1-9][0-9]*)"
_PRERELEASE_IDENT = r"(?:0|[1-9][0-9]*|[0-9]*[A-Za-z-][0-9A-Za-z-]*)"
_BUILD_IDENT = r"[0-9A-Za-z-]+"

_SEMVER_RE = re.compile(
    rf"^v(?P<major>{_NUM})"
    rf"(?:\.(?P<minor>{_NUM})"
    rf"(?:\.(?P<patch>{_NUM})"
    rf"(?:-(?P<prerelease>{_PRERELEASE_IDENT}(?:\.{_PRERELEASE_IDENT})*))?"
    rf"(?:\+(?P<build>{_BUILD_IDENT}(?:\.{_BUILD_IDENT})*))?"
    r")?)?$"
)

_PSEUDO_VERSION_RE = re.compile(
    r"^v[0-9]+\.(0\.0-|\d+\.\d+-([^+]*\.)?0\.)\d{14}-[A-Za-z0-9]+"
    r"(\+[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?$"
)

# Characters allowed anywhere in a module path element
_PATH_ELEM_RE = re.compile(r"^[A-Za-z0-9\-._~]+$")
# The first element is a host name: lower-case only
_FIRST_ELEM_RE = re.compile(r"^[a-z0-9\-.]+$")

# ASCII punctuation allowed in file names inside a module zip
_FILE_NAME_PUNCTUATION = frozenset("!#$%&()+,-.=@[]^_{}~ ")
_WINDOWS_RESERVED_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)


def is_valid_semver(version: str) -> bool:
    """Report whether version is a valid semantic version.

    The leading 'v' is required. As in the Go toolchain, the shorthands
    'vMAJOR' and 'vMAJOR.MINOR' are accepted (without prerelease or build
    suffixes).

    Examples:
        >>> is_valid_semver('v1.2.3')
        True
        >>> is_valid_semver('v1.2')
        True
        >>> is_valid_semver('1.2.3')
        False
        >>> is_valid_semver('v1.02.3')
        False
    """
    return bool(_SEMVER_RE.match(version or ""))


def canonical_semver(version: str) -> str:
    """Return the canonical form of version, or '' if it is invalid.

    Shorthands are expanded ('v1.2' -> 'v1.2.0') and build metadata is
    dropped, except for '+incompatible' which is part of module identity.

    Examples:
        >>> canonical_semver('v1')
        'v1.0.0'
        >>> canonical_semver('v1.2.3-rc.1+meta')
        'v1.2.3-rc.1'
        >>> canonical_semver('v2.0.0+incompatible')
        'v2.0.0+incompatible'
    """
    match = _SEMVER_RE.match(version or "")
    if not match:
        return ""
    canonical = "v{}.{}.{}".format(
        match.group("major"),
        match.group("minor") or "0",
        match.group("patch") or "0",
    )
    if match.group("prerelease"):
        canonical += "-" + match.group("prerelease")
    if match.group("build") == "incompatible":
        canonical += "+incompatible"
    return canonical


def semver_major(version: str) -> str:
    """Return the major version prefix ('v2' for 'v2.1.0'), or '' if invalid."""
    match = _SEMVER_RE.match(version or "")
    if not match:
        return ""
    return "v" + match.group("major")


def semver_build(version: str) -> str:
    """Return the build suffix including '+', or '' if there is none."""
    match = _SEMVER_RE.match(version or "")
    if not match or not match.group("build"):
        return ""
    return "+" + match.group("build")


def is_pseudo_version(version: str) -> bool:
    """Report whether version is a pseudo-version.

    A pseudo-version encodes a base version, a UTC timestamp and an
    abbreviated revision, e.g. 'v0.0.0-20230101120000-abcdefabcdef' or
    'v1.2.4-0.20230101120000-abcdefabcdef'.

    Examples:
        >>> is_pseudo_version('v0.0.0-20230101120000-abcdefabcdef')
        True
        >>> is_pseudo_version('v1.2.3')
        False
    """
    return (
        version.count("-") >= 2
        and is_valid_semver(version)
        and bool(_PSEUDO_VERSION_RE.match(version))
    )


def split_path_version(path: str) -> Tuple[str, str, bool]:
    """Split a module path into prefix and major-version suffix.

    Returns:
        Tuple of (prefix, path_major, ok). path_major is '', '/vN', or for
        gopkg.in paths '.vN'. ok is False when the suffix looks like a major
        version but is not a valid one ('/v0', '/v1', '/v01').

    Examples:
        >>> split_path_version('example.com/foo/v2')
        ('example.com/foo', '/v2', True)
        >>> split_path_version('example.com/foo')
        ('example.com/foo', '', True)
        >>> split_path_version('gopkg.in/yaml.v3')
        ('gopkg.in/yaml', '.v3', True)
    """
    if path.startswith("gopkg.in/"):
        match = re.search(r"\.v([0-9]+)(-unstable)?$", path)
        if not match or (match.group(1).startswith("0") and match.group(1) != "0"):
            return path, "", False
        return path[: match.start()], match.group(0), True

    match = re.search(r"/v([0-9]+)$", path)
    if not match:
        return path, "", True
    digits = match.group(1)
    prefix = path[: match.start()]
    if digits.startswith("0") or digits == "1":
        return path, "", False
    return prefix, "/v" + digits, True


def check_path(path: str) -> None:
    """Validate a module path.

    Raises:
        ValidationError: If the path is not a valid module path
    """
    if not path:
        raise ValidationError("module path cannot be empty")
    if path.startswith("/") or path.endswith("/"):
        raise ValidationError(
            f"malformed module path {path!r}: leading or trailing slash"
        )

    elems = path.split("/")
    for elem in elems:
        if not elem:
            raise ValidationError(f"malformed module path {path!r}: empty path element")
        if elem in (".", "..") or elem.startswith(".") or elem.endswith("."):
            raise ValidationError(
                f"malformed module path {path!r}: element {elem!r} "
                "cannot begin or end with a dot"
            )
        if not _PATH_ELEM_RE.match(elem):
            raise ValidationError(
                f"malformed module path {path!r}: invalid char in element {elem!r}"
            )

    first = elems[0]
    if "." not in first:
        raise ValidationError(
            f"malformed module path {path!r}: missing dot in first path element"
        )
    if first.startswith("-"):
        raise ValidationError(
            f"malformed module path {path!r}: leading dash in first path element"
        )
    if not _FIRST_ELEM_RE.match(first):
        raise ValidationError(
            f"malformed module path {path!r}: invalid char in first path element"
        )

    _, _, ok = split_path_version(path)
    if not ok:
        raise ValidationError(
            f"malformed module path {path!r}: invalid major version suffix"
        )


def _file_char_ok(char: str) -> bool:
    if char.isascii():
        return char.isalnum() or char in _FILE_NAME_PUNCTUATION
    return char.isalpha()


def check_file_path(name: str) -> None:
    """Validate a slash-separated file path inside a module.

    File names may use letters, digits, spaces and the punctuation
    '!#$%&()+,-.=@[]^_{}~'. Elements that Windows reserves as device names
    (CON, AUX, COM1, ...) are rejected with or without an extension.

    Examples:
        >>> check_file_path('cmd/tool/main.go')
        >>> check_file_path("it's.txt")
        Traceback (most recent call last):
            ...
        installas.module.ValidationError: malformed file path "it's.txt": invalid char "'"

    Raises:
        ValidationError: If name cannot appear in a module zip
    """
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        raise ValidationError(f"malformed file path {name!r}: invalid UTF-8") from None
    if not name:
        raise ValidationError("malformed file path '': empty string")
    if "//" in name:
        raise ValidationError(f"malformed file path {name!r}: double slash")
    if name.startswith("/") or name.endswith("/"):
        raise ValidationError(f"malformed file path {name!r}: leading or trailing slash")

    for elem in name.split("/"):
        if elem.count(".") == len(elem):
            raise ValidationError(
                f"malformed file path {name!r}: invalid path element {elem!r}"
            )
        if elem.endswith("."):
            raise ValidationError(f"malformed file path {name!r}: trailing dot in path element")
        for char in elem:
            if not _file_char_ok(char):
                raise ValidationError(f"malformed file path {name!r}: invalid char {char!r}")
        short = elem.split(".", 1)[0]
        if short.upper() in _WINDOWS_RESERVED_NAMES:
            raise ValidationError(
                f"malformed file path {name!r}: {short!r} disallowed as path element "
                "component on Windows"
            )


def check_version(path: str, version: str) -> None:
    """Validate version for the module at path.

    The version must be a canonical semantic version whose major version
    agrees with the path's '/vN' suffix.

    Raises:
        ValidationError: If the version is malformed or mismatched
    """
    if not is_valid_semver(version):
        raise ValidationError(f"version {version!r} is not a semantic version")

    canonical = canonical_semver(version)
    if canonical != version:
        raise ValidationError(
            f"version {version!r} is not canonical (use {canonical!r})"
        )

    _, path_major, _ = split_path_version(path)
    if path_major.endswith("-unstable"):
        path_major = path_major[: -len("-unstable")]
    if version.startswith("v0.0.0-") and path_major == ".v1":
        return
    major = semver_major(version)
    if path_major:
        if major != path_major[1:]:
            raise ValidationError(
                f"{path}@{version}: invalid version: "
                f"should be {path_major[1:]}, not {major}"
            )
    elif major not in ("v0", "v1") and semver_build(version) != "+incompatible":
        raise ValidationError(
            f"{path}@{version}: invalid version: should be v0 or v1, not {major}"
        )


def _escape_string(s: str) -> str:
    escaped = []
    for char in s:
        if char == "!" or ord(char) >= 0x80:
            raise ValidationError(f"internal error: inconsistency in escape of {s!r}")
        if "A" <= char <= "Z":
            escaped.append("!" + char.lower())
        else:
            escaped.append(char)
    return "".join(escaped)


def escape_path(path: str) -> str:
    """Return the case-safe filesystem form of a module path.

    Every upper-case letter becomes '!' followed by its lower-case form,
    so that module paths differing only in case do not collide on
    case-insensitive filesystems.

    Examples:
        >>> escape_path('github.com/Azure/azure-sdk')
        'github.com/!azure/azure-sdk'
    """
    check_path(path)
    return _escape_string(path)


def escape_version(version: str) -> str:
    """Return the case-safe filesystem form of a version.

    Examples:
        >>> escape_version('v1.0.0-RC1')
        'v1.0.0-!r!c1'
    """
    if not version or "/" in version or "\\" in version:
        raise ValidationError(f"invalid version {version!r}")
    return _escape_string(version)


def unescape_path(escaped: str) -> str:
    """Invert escape_path.

    Examples:
        >>> unescape_path('github.com/!azure/azure-sdk')
        'github.com/Azure/azure-sdk'
    """
    if re.search(r"[A-Z]", escaped) or re.search(r"!(?![a-z])", escaped):
        raise ValidationError(f"invalid escaped module path {escaped!r}")
    return re.sub(r"!([a-z])", lambda m: m.group(1).upper(), escaped)


@dataclass(frozen=True)
class ModuleVersion:
    """A module path at a specific version.

    Attributes:
        path: Module path (e.g. 'example.com/foo')
        version: Canonical semantic version (e.g. 'v1.0.0')

    Examples:
        >>> mv = ModuleVersion.create('example.com/foo', 'v1.0.0')
        >>> str(mv)
        'example.com/foo@v1.0.0'
    """

    path: str
    version: str

    @classmethod
    def create(cls, path: str, version: str) -> "ModuleVersion":
        """Validate path and version and build a ModuleVersion.

        Raises:
            ValidationError: If either is malformed
        """
        check_path(path)
        check_version(path, version)
        return cls(path=path, version=version)

    @property
    def is_pseudo(self) -> bool:
        return is_pseudo_version(self.version)

    @property
    def escaped_path(self) -> str:
        return escape_path(self.path)

    @property
    def escaped_version(self) -> str:
        return escape_version(self.version)

    @property
    def zip_prefix(self) -> str:
        """Prefix shared by every entry of this version's module zip."""
        return f"{self.path}@{self.version}/"

    def __str__(self) -> str:
        return f"{self.path}@{self.version}"


def parse_target(target: str) -> Tuple[str, str]:
    """Split an install target of the form '[<path>]@<version>'.

    Args:
        target: Target string, e.g. './cmd/tool@v0.0.1' or '@v0.0.1'

    Returns:
        Tuple of (package path, version). An empty path becomes '.'.

    Raises:
        ValidationError: If '@' is missing or the version is invalid

    Examples:
        >>> parse_target('./cmd/coolbin@v0.0.1')
        ('./cmd/coolbin', 'v0.0.1')
        >>> parse_target('@v1.0.0')
        ('.', 'v1.0.0')
    """
    target = (target or "").strip()
    path, sep, version = target.partition("@")
    if not sep:
        raise ValidationError(
            "the target should be either package@version or @version"
        )
    if not is_valid_semver(version):
        raise ValidationError(f"version {version!r} is invalid")
    return path or ".", version
