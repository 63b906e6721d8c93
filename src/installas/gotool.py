"""Thin wrappers around the go command."""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)

# Prints import path, module path and module root of one package
LIST_TEMPLATE = '{{printf "%s\\n%s\\n%s" .ImportPath .Module.Path .Module.Dir -}}'


class GoCommandError(subprocess.SubprocessError):
    """Raised when the go command cannot be run or reports a failure."""

    pass


@dataclass(frozen=True)
class PackageInfo:
    """Package and module information reported by 'go list'.

    Attributes:
        import_path: Import path of the package (e.g. 'example.com/foo/cmd/tool')
        module_path: Path of the main module containing it
        module_dir: Root directory of that module
    """

    import_path: str
    module_path: str
    module_dir: Path


def list_package(
    target_path: str,
    go_command: str = "go",
    cwd: Optional[Union[str, Path]] = None,
) -> PackageInfo:
    """Describe the package at target_path.

    Args:
        target_path: Package pattern naming exactly one package (e.g. '.')
        go_command: Go executable
        cwd: Working directory for the command

    Returns:
        PackageInfo for the package

    Raises:
        GoCommandError: If go cannot be run, fails, or the output is unexpected
    """
    cmd = [go_command, "list", "-f", LIST_TEMPLATE, target_path]
    logger.debug(f"Running {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True)
    except OSError as e:
        raise GoCommandError(f"cannot run {go_command}: {e}") from e

    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        raise GoCommandError(
            f"'{go_command} list {target_path}' exited with status {result.returncode}"
            + (f": {stderr}" if stderr else "")
        )

    lines = [line.strip() for line in result.stdout.splitlines()]
    if len(lines) < 3:
        raise GoCommandError(f"unexpected 'go list' output: {result.stdout!r}")
    if len(lines) > 3:
        raise GoCommandError(f"target {target_path!r} matches more than one package")

    import_path, module_path, module_dir = lines
    if not module_path or not module_dir:
        raise GoCommandError(f"package {import_path!r} is not part of a module")

    return PackageInfo(
        import_path=import_path,
        module_path=module_path,
        module_dir=Path(module_dir),
    )


def install_command(
    package_path: str,
    version: str,
    build_flags: Sequence[str] = (),
    go_command: str = "go",
) -> List[str]:
    """Build the 'go install' command line.

    Examples:
        >>> install_command('example.com/foo/cmd/tool', 'v1.0.0', ['-trimpath'])
        ['go', 'install', '-trimpath', 'example.com/foo/cmd/tool@v1.0.0']
    """
    return [go_command, "install", *build_flags, f"{package_path}@{version}"]


def run_install(cmd: Sequence[str], env: Mapping[str, str]) -> int:
    """Run an install command with inherited stdio and an explicit environment.

    Returns:
        The command's exit code

    Raises:
        GoCommandError: If the command cannot be launched
    """
    try:
        completed = subprocess.run(list(cmd), env=dict(env))
    except OSError as e:
        raise GoCommandError(f"cannot run {cmd[0]}: {e}") from e
    if completed.returncode != 0:
        logger.info(f"{' '.join(cmd)} exited with status {completed.returncode}")
    return completed.returncode
