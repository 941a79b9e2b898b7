import itertools
import random
import signal
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, List, Optional

from loguru import logger

from file_dit.cache import CacheInvalidator
from file_dit.config import RunConfig
from file_dit.digest import Digester, select_digester
from file_dit.engine import PassEngine
from file_dit.entropy import ContentSource, select_content_source
from file_dit.errors import CleanupError, RunInterrupted
from file_dit.fs import (
    MEMORY_FILESYSTEMS,
    StagingWriter,
    free_bytes,
    make_run_dir,
    make_run_tag,
    mount_fstype,
    remove_dir,
    remove_tagged_files,
)
from file_dit.model import Pass, RunSummary

INTERRUPT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancellationToken:
    """
    Cooperative stop request, checked once per pass boundary.

    Besides an explicit cancel(), any registered poll callable that returns
    true cancels the token (e.g. a non-blocking keypress check).
    """

    def __init__(self, polls: Iterable[Callable[[], bool]] = ()) -> None:
        self._cancelled = False
        self._polls: List[Callable[[], bool]] = list(polls)

    def add_poll(self, poll: Callable[[], bool]) -> None:
        self._polls.append(poll)

    def cancel(self) -> None:
        self._cancelled = True

    def is_cancelled(self) -> bool:
        if not self._cancelled and any(poll() for poll in self._polls):
            self._cancelled = True
        return self._cancelled


class RunController:
    def __init__(
        self,
        config: RunConfig,
        token: Optional[CancellationToken] = None,
        on_pass_start: Optional[Callable[[int], None]] = None,
        on_pass: Optional[Callable[[Pass], None]] = None,
        digester: Optional[Digester] = None,
        source: Optional[ContentSource] = None,
        invalidator: Optional[CacheInvalidator] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config
        self.token = token or CancellationToken()
        self.on_pass_start = on_pass_start
        self.on_pass = on_pass
        self.digester = digester
        self.source = source
        self.invalidator = invalidator
        self.rng = rng

        self.tag = make_run_tag()
        self.test_dir: Optional[str] = None
        self.staging_dir: Optional[str] = None
        self.interrupted = False
        self._running = False
        self._tearing_down = False
        self._torn_down = False

    def setup(self) -> PassEngine:
        if self.invalidator is None:
            CacheInvalidator.check_supported()
            self.invalidator = CacheInvalidator()
        if self.digester is None:
            self.digester = select_digester(self.config.digest_name)
        if self.source is None:
            self.source = select_content_source(self.config.content_source_name)

        self.test_dir = make_run_dir(self.config.target_base, "Test")
        self.staging_dir = make_run_dir(self.config.staging_base, "Intermediate")
        logger.info(f'Test directory: "{self.test_dir}"')
        logger.debug(f'Intermediate directory: "{self.staging_dir}", run tag {self.tag}')

        fstype = mount_fstype(self.staging_dir)
        if fstype not in MEMORY_FILESYSTEMS:
            logger.warning(
                f"{self.config.staging_base} is not memory backed (fstype {fstype}), "
                f"recorded hashes will depend on that device"
            )
        free = free_bytes(self.test_dir)
        if free < self.config.budget.bytes_per_pass:
            logger.warning(f"{self.test_dir} has {free} bytes free, less than {self.config.budget.bytes_per_pass} per pass")

        return PassEngine(
            budget=self.config.budget,
            staging_dir=self.staging_dir,
            target_dir=self.test_dir,
            tag=self.tag,
            writer=StagingWriter(self.source, self.tag),
            digester=self.digester,
            invalidator=self.invalidator,
            rng=self.rng,
        )

    def pass_indexes(self) -> Iterator[int]:
        if self.config.unbounded:
            return itertools.count()
        return iter(range(self.config.pass_count))

    def should_stop(self) -> bool:
        return self.interrupted or self.token.is_cancelled()

    def run(self) -> RunSummary:
        summary = RunSummary()
        try:
            self._running = True
            try:
                self.run_passes(summary)
            finally:
                self._tearing_down = True
                self.teardown()
        except RunInterrupted as ex:
            logger.warning(f"{ex}, stopping after {summary.passes_completed} passes")
        finally:
            # a signal landing before the inner teardown started
            self.teardown()
            self._running = False
        summary.interrupted = self.interrupted
        if summary.cancelled:
            logger.info(f"cancelled after {summary.passes_completed} passes")
        return summary

    def run_passes(self, summary: RunSummary) -> None:
        engine = self.setup()
        for index in self.pass_indexes():
            if self.should_stop():
                summary.cancelled = not self.interrupted
                break
            if self.on_pass_start is not None:
                self.on_pass_start(index)
            current = engine.run_pass(index)
            summary.add(current)
            if current.mismatches:
                logger.error(f"pass {current.number}: {len(current.mismatches)} mismatches in {len(current.files)} files")
            else:
                logger.success(f"pass {current.number}: {len(current.files)} files verified")
            if self.on_pass is not None:
                self.on_pass(current)

    def interrupt(self, signum: int = signal.SIGINT) -> None:
        """
        Set the interrupt flag; raises RunInterrupted the first time while a run is active.

        Called from the signal handler, so it does no I/O. The exception unwinds
        whatever blocking call is in progress into the normal teardown path.
        """
        first = not self.interrupted
        self.interrupted = True
        if first and self._running and not (self._tearing_down or self._torn_down):
            raise RunInterrupted(signum)

    def _handle_signal(self, signum, frame) -> None:
        self.interrupt(signum)

    @contextmanager
    def interrupt_handler(self, signals=INTERRUPT_SIGNALS):
        previous = {signum: signal.getsignal(signum) for signum in signals}
        for signum in signals:
            signal.signal(signum, self._handle_signal)
        try:
            yield self
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

    def teardown(self) -> None:
        """
        Remove everything this run created. Safe to call more than once.
        """
        if self._torn_down:
            return
        self._tearing_down = True
        try:
            if self.test_dir is not None:
                if self.interrupted:
                    logger.warning(f'Cleanup: Deleting temporary files in "{self.test_dir}"')
                self._cleanup(remove_tagged_files, self.test_dir, self.tag)
                self._cleanup(remove_dir, self.test_dir, False)
            if self.staging_dir is not None:
                self._cleanup(remove_dir, self.staging_dir, True)
        finally:
            self._torn_down = True
            self._tearing_down = False

    @staticmethod
    def _cleanup(fn, *args) -> None:
        try:
            fn(*args)
        except CleanupError as ex:
            # never masks the run's result
            logger.warning(str(ex))
