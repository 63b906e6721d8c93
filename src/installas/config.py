"""Configuration for installas runs."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class InstallConfig:
    """Configuration for an install run.

    Attributes:
        go_command: Go toolchain executable used for 'go list' and 'go install'
        temp_dir: Parent directory for the proxy root (None = system temp dir)
        verbose: Enable debug logging
    """

    go_command: str = "go"
    temp_dir: Optional[Path] = None
    verbose: bool = False

    def __post_init__(self):
        """Ensure temp_dir is a Path object."""
        if self.temp_dir is not None and not isinstance(self.temp_dir, Path):
            self.temp_dir = Path(self.temp_dir).expanduser()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "InstallConfig":
        """Create configuration from environment variables.

        Environment variables:
            INSTALLAS_GO: Go executable (default 'go')
            INSTALLAS_TMPDIR: Parent directory for the proxy root
            INSTALLAS_VERBOSE: Enable debug logging (true/false)

        Returns:
            InstallConfig instance
        """
        if environ is None:
            environ = os.environ

        config = cls()

        if environ.get("INSTALLAS_GO"):
            config.go_command = environ["INSTALLAS_GO"]

        if environ.get("INSTALLAS_TMPDIR"):
            config.temp_dir = Path(environ["INSTALLAS_TMPDIR"]).expanduser()

        if environ.get("INSTALLAS_VERBOSE"):
            config.verbose = environ["INSTALLAS_VERBOSE"].lower() in _TRUE_VALUES

        return config
