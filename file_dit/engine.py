import enum
import random
import time
from typing import List, Optional

from loguru import logger

from file_dit.cache import CacheInvalidator
from file_dit.digest import Digester
from file_dit.errors import CleanupError, GenerationError, HashError
from file_dit.fs import Placer, StagingWriter, discard, remove_tagged_files, sync_directory
from file_dit.model import Budget, Mismatch, Pass, TestFile


class PassState(enum.Enum):
    GENERATING = "generating"
    SYNCING = "syncing"
    VERIFYING = "verifying"
    DONE = "done"


class PassEngine:
    """
    One generate, sync, verify cycle against the byte budget.

    Every file is generated in the memory-backed staging directory and hashed
    there, and only then moved to the target directory, so the recorded digest
    never depends on the device under test. Verification drops the page cache
    of each file right before reading it back.
    """

    def __init__(
        self,
        budget: Budget,
        staging_dir: str,
        target_dir: str,
        tag: str,
        writer: StagingWriter,
        digester: Digester,
        placer: Optional[Placer] = None,
        invalidator: Optional[CacheInvalidator] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.budget = budget
        self.staging_dir = staging_dir
        self.target_dir = target_dir
        self.tag = tag
        self.writer = writer
        self.digester = digester
        self.placer = placer or Placer()
        self.invalidator = invalidator or CacheInvalidator()
        self.rng = rng or random.SystemRandom()
        self.state: Optional[PassState] = None

    def pick_size(self, remaining: int) -> int:
        upper = min(self.budget.max_file_size, remaining)
        assert upper >= self.budget.min_file_size, (upper, self.budget)
        return self.rng.randint(self.budget.min_file_size, upper)

    def run_pass(self, index: int) -> Pass:
        current = Pass(index)

        self.state = PassState.GENERATING
        start = time.perf_counter()
        self.generate(current)
        current.generate_elapsed = time.perf_counter() - start

        self.state = PassState.SYNCING
        try:
            sync_directory(self.target_dir, (f.path for f in current.files))
        except OSError as ex:
            raise GenerationError(f"flushing {self.target_dir} failed: {ex}") from ex

        self.state = PassState.VERIFYING
        start = time.perf_counter()
        current.mismatches = self.verify(current.files)
        current.verify_elapsed = time.perf_counter() - start

        self.finish(current)
        return current

    def generate(self, current: Pass) -> None:
        remaining = self.budget.bytes_per_pass
        while remaining >= self.budget.min_file_size:
            size = self.pick_size(remaining)
            test_file = self.create_file(size)
            current.files.append(test_file)
            current.bytes_generated += size
            remaining -= size

    def create_file(self, size: int) -> TestFile:
        staging_path = self.writer.write(self.staging_dir, size)
        try:
            digest = self.digester.digest_file(staging_path)
        except HashError as ex:
            discard(staging_path)
            raise GenerationError(f"Error hashing staged file {staging_path}: {ex}") from ex
        path = self.placer.relocate(staging_path, self.target_dir)
        logger.debug(f"Created: {path}, Size: {size}, Hash: {digest}")
        return TestFile(path, size, digest)

    def verify(self, files: List[TestFile]) -> List[Mismatch]:
        mismatches = []
        for number, test_file in enumerate(files, start=1):
            try:
                self.invalidator.invalidate(test_file.path)
                actual = self.digester.digest_file(test_file.path)
            except HashError as ex:
                logger.error(f'Read failure on file #{number}, "{test_file.path}": {ex}')
                mismatches.append(Mismatch(test_file, None, str(ex)))
                continue
            if actual != test_file.expected_digest:
                logger.error(
                    f'Hash mismatch on file #{number}, "{test_file.path}"\n'
                    f"Hash generated: {actual}\n"
                    f" Hash expected: {test_file.expected_digest}"
                )
                mismatches.append(Mismatch(test_file, actual))
        return mismatches

    def finish(self, current: Pass) -> None:
        self.state = PassState.DONE
        try:
            removed = remove_tagged_files(self.target_dir, self.tag)
        except CleanupError as ex:
            logger.warning(str(ex))
        else:
            logger.debug(f"pass {current.number}: deleted {removed} of {len(current.files)} files")
