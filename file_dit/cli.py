import os
import select
import sys
from contextlib import contextmanager
from typing import Optional

import click
from loguru import logger

from file_dit import __version__
from file_dit.config import (
    APP_NAME,
    DEFAULT_BYTES_PER_PASS,
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_MIN_FILE_SIZE,
    DEFAULT_PASS_COUNT,
    DEFAULT_STAGING_BASE,
    DEFAULT_TARGET_BASE,
    ENV_HASH,
    ENV_SOURCE,
    ENV_STAGING_BASE,
    ENV_TARGET_BASE,
    RunConfig,
)
from file_dit.digest import DIGESTERS, digester_names, select_digester
from file_dit.entropy import content_source_names
from file_dit.errors import FileDitError
from file_dit.model import EXIT_ERROR, Budget, Pass, RunSummary
from file_dit.runner import CancellationToken, RunController
from file_dit.units import SIZE_FMT_PADDED, format_count, format_rate, format_size, parse_size

LOG_FORMAT = "<level>{level: <8}</level> {message}"


def abort(msg):
    click.echo(click.style(msg, fg="red"), err=True)
    sys.exit(EXIT_ERROR)


def setup_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO", format=LOG_FORMAT)


class SizeType(click.ParamType):
    name = "size"

    def get_metavar(self, param, *args) -> str:
        return "SIZE"

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value
        try:
            size = parse_size(value)
        except ValueError:
            self.fail(f"{value} is not a valid size, use e.g. 4096, 64K, 1Mi or 1GiB", param, ctx)
        if size < 1:
            self.fail(f"{value} has to be >= 1 byte", param, ctx)
        return size


class KeyPoller:
    """
    Non-blocking check for a 'q' keypress on an interactive terminal.
    """

    def __init__(self, key: str = "q") -> None:
        self.key = key
        self.enabled = False

    @contextmanager
    def cbreak(self):
        if not sys.stdin.isatty():
            yield self
            return
        import termios
        import tty

        fd = sys.stdin.fileno()
        saved = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        self.enabled = True
        try:
            yield self
        finally:
            self.enabled = False
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)

    def __call__(self) -> bool:
        if not self.enabled:
            return False
        readable, _, _ = select.select([sys.stdin], [], [], 0)
        if not readable:
            return False
        return os.read(sys.stdin.fileno(), 1).decode(errors="replace") == self.key


def print_pass_start(pass_count: int):
    def report(index: int) -> None:
        if pass_count > 0:
            click.echo(f"Pass: {index + 1} of {pass_count}\r", nl=False)
        else:
            click.echo(f"Pass: {index + 1}\r", nl=False)

    return report


def print_pass_perf(p: Pass) -> None:
    size_str = format_size(p.bytes_generated, SIZE_FMT_PADDED)
    bytes_str = format_count(p.bytes_generated)
    click.echo(
        f"\n   Wrote {size_str} ({bytes_str} bytes) in {len(p.files)} files, "
        f"{p.generate_elapsed:0.4f} seconds ({format_rate(p.bytes_generated, p.generate_elapsed)}/sec)"
    )
    click.echo(
        f"Verified {size_str} ({bytes_str} bytes) in {len(p.files)} files, "
        f"{p.verify_elapsed:0.4f} seconds ({format_rate(p.bytes_generated, p.verify_elapsed)}/sec)"
    )


def print_totals(summary: RunSummary) -> None:
    click.echo()
    click.echo(
        f"Totals: {summary.passes_completed} passes, {summary.total_mismatches} mismatches, "
        f"{format_count(summary.total_files)} file(s), {format_size(summary.total_bytes)} "
        f"({format_count(summary.total_bytes)} bytes)"
    )


def check_budget(min_size: int, max_size: int, bytes_per_pass: int) -> Budget:
    if min_size > bytes_per_pass:
        abort("Minimum file size specified is > specified total size to generate per pass")
    if max_size > bytes_per_pass:
        abort("Maximum file size specified is > specified total size to generate per pass")
    if min_size > max_size:
        logger.warning("Minimum file size specified > maximum size specified. Raising maximum to minimum")
        max_size = min_size
    return Budget(min_size, max_size, bytes_per_pass)


@click.group()
@click.version_option(__version__, prog_name=APP_NAME)
def cli():
    """
    File data integrity tool: verifies that a drive/filesystem reliably stores and retrieves data
    """


@cli.command()
@click.option(
    "-d", "--dir", "target_base", envvar=ENV_TARGET_BASE, default=DEFAULT_TARGET_BASE, show_default=True,
    type=click.Path(exists=True, file_okay=False), help="Path to test",
)
@click.option(
    "-r", "--ram-dir", "staging_base", envvar=ENV_STAGING_BASE, default=DEFAULT_STAGING_BASE, show_default=True,
    type=click.Path(exists=True, file_okay=False), help="Path for intermediate (ram) files",
)
@click.option(
    "-p", "--passes", "pass_count", type=click.IntRange(min=0), default=DEFAULT_PASS_COUNT, show_default=True,
    help="Number of passes, 0=infinite",
)
@click.option(
    "-b", "--bytes", "bytes_per_pass", type=SizeType(), default=format_size(DEFAULT_BYTES_PER_PASS, "%.0f"),
    show_default=True, help="Amount of data to test per pass",
)
@click.option(
    "-m", "--min-size", type=SizeType(), default=format_size(DEFAULT_MIN_FILE_SIZE, "%.0f"), show_default=True,
    help="Minimum random file size",
)
@click.option(
    "-M", "--max-size", type=SizeType(), default=format_size(DEFAULT_MAX_FILE_SIZE, "%.0f"), show_default=True,
    help="Maximum random file size",
)
@click.option(
    "--hash", "digest_name", envvar=ENV_HASH, type=click.Choice(digester_names()), default=None,
    help="Hash implementation, defaults to the fastest available",
)
@click.option(
    "--source", "content_source_name", envvar=ENV_SOURCE, type=click.Choice(content_source_names()), default=None,
    help="Random content generator, defaults to the fastest available",
)
@click.option("-t", "--perf", "show_perf", is_flag=True, default=False, help="Show per-pass performance data")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Verbose/debugging")
def run(
    target_base: str,
    staging_base: str,
    pass_count: int,
    bytes_per_pass: int,
    min_size: int,
    max_size: int,
    digest_name: Optional[str],
    content_source_name: Optional[str],
    show_perf: bool,
    verbose: bool,
):
    """
    Write random files, read them back from the media and compare hashes

    \b
    Example:
    file-dit run -d /mnt/disk -p 10 -b 1GiB -m 64K -M 16M -t

    \b
    - Each pass generates files into the ram directory, hashes them there and moves them to the test directory.
    - After a flush, every file's page cache is dropped and its hash recomputed from the device.
    - Press 'q' to stop after the current pass, Ctrl-C to stop immediately. Created files are always deleted.
    - Exit status: 0 no mismatches, 2 mismatches found, 1 error, 10 interrupted.
    """
    setup_logging(verbose)
    budget = check_budget(min_size, max_size, bytes_per_pass)
    config = RunConfig(
        target_base=target_base,
        staging_base=staging_base,
        pass_count=pass_count,
        budget=budget,
        digest_name=digest_name,
        content_source_name=content_source_name,
        show_perf=show_perf,
        verbose=verbose,
    )

    poller = KeyPoller()
    report_perf = config.show_perf or config.verbose
    controller = RunController(
        config,
        token=CancellationToken([poller]),
        on_pass_start=print_pass_start(pass_count),
        on_pass=print_pass_perf if report_perf else None,
    )
    try:
        with poller.cbreak(), controller.interrupt_handler():
            if poller.enabled:
                click.echo("Press 'q' to quit - will exit after completion of current pass")
            summary = controller.run()
    except FileDitError as ex:
        abort(f"Error: {ex}")

    if summary.interrupted:
        click.echo(" <Ctrl-C> Pressed")
    print_totals(summary)
    sys.exit(summary.exit_code)


@cli.command()
def hashers():
    """
    List hash implementations, fastest first
    """
    setup_logging(False)
    try:
        selected = select_digester().name
    except FileDitError:
        selected = None
    for digester_cls in DIGESTERS:
        status = "available" if digester_cls.available() else f"missing {digester_cls.module}"
        marker = "*" if digester_cls.name == selected else " "
        click.echo(f"{marker} {digester_cls.name:<10} {status}")


def main():
    # usage errors exit with 1, status 2 is reserved for hash mismatches
    try:
        return cli.main(standalone_mode=False)
    except click.exceptions.Abort:
        abort("Aborted!")
    except click.ClickException as ex:
        ex.show()
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
