"""Main CLI entry point for installas.

Builds and installs a Go binary with a fabricated version stamp by serving
the current module at that version from a temporary file-based module
proxy placed in front of GOPROXY.
"""

import logging
import sys
from typing import List, Sequence

import click
from rich.console import Console
from rich.markup import escape

from installas.chain import ProxyEnvironment
from installas.config import InstallConfig
from installas.gotool import GoCommandError, install_command, list_package, run_install
from installas.module import ValidationError, parse_target
from installas.proxy import ProxyError, ProxyMaterializer

logger = logging.getLogger(__name__)

# Global console for Rich output
console = Console(soft_wrap=True)

USAGE = """\
Usage: installas [build flags] <target>
 installs the target package with the specified version.

 target: package@version (./cmd/coolbin@v0.0.1) or @version (@v0.0.1)
The binary will be installed in the GOBIN or GOPATH/bin directory.
If you want to install the binary in a different location, use GOBIN."""


def print_usage() -> None:
    console.print(escape(USAGE), highlight=False)


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    # filelock logs every acquire/release at debug level
    logging.getLogger("filelock").setLevel(logging.WARNING)


def _fail(message: str) -> None:
    console.print(f"[red]✗[/red] Error: {escape(message)}", style="red")
    sys.exit(1)


def install_as(build_flags: Sequence[str], target: str, config: InstallConfig) -> int:
    """Install target at its requested version and return the go exit code.

    Raises:
        ValidationError: If the target is malformed
        GoCommandError: If 'go list' fails or 'go install' cannot be launched
        ProxyError: If the proxy directory cannot be materialized
    """
    package_path, version = parse_target(target)

    package = list_package(package_path, config.go_command)

    materializer = ProxyMaterializer(temp_dir=config.temp_dir)
    published = materializer.materialize(package.module_path, version, package.module_dir)

    env = ProxyEnvironment.from_env().with_module(published.root, package.module_path)
    cmd: List[str] = install_command(
        package.import_path, version, build_flags, config.go_command
    )

    console.print(f"[dim]Module proxy:[/dim] {escape(str(published.root))}")
    for line in published.go_sum:
        console.print(f"[dim]  {escape(line)}[/dim]", highlight=False)
    console.print(f"Running {escape(' '.join(cmd))}", highlight=False)

    return run_install(cmd, env.apply())


@click.command(
    context_settings={
        "ignore_unknown_options": True,
        "allow_interspersed_args": False,
    }
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def cli(args):
    """Install a Go package with a fabricated version.

    Leading arguments are build flags passed verbatim to 'go install'; the
    last argument is the target, package@version or @version.

    Example:
        installas ./cmd/coolbin@v0.0.1
        installas -trimpath @v1.2.3
    """
    config = InstallConfig.from_env()
    _setup_logging(config.verbose)

    if not args:
        print_usage()
        sys.exit(1)

    build_flags, target = list(args[:-1]), args[-1]

    try:
        parse_target(target)
    except ValidationError as e:
        console.print(f"[red]✗[/red] Error: {escape(str(e))}", style="red")
        print_usage()
        sys.exit(1)

    try:
        exit_code = install_as(build_flags, target, config)
    except (ValidationError, GoCommandError, ProxyError) as e:
        logger.debug("install failed", exc_info=True)
        _fail(str(e))

    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
