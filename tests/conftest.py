import os
import random
import sys

import pytest
from loguru import logger

from file_dit.cache import CacheInvalidator
from file_dit.config import RunConfig
from file_dit.digest import Sha1Digester
from file_dit.entropy import UrandomContentSource
from file_dit.fs import StagingWriter, make_run_tag
from file_dit.model import Budget

requires_fadvise = pytest.mark.skipif(not hasattr(os, "posix_fadvise"), reason="posix_fadvise not available")


def flip_byte(path: str, offset: int = 0) -> None:
    with open(path, "r+b") as f:
        f.seek(offset)
        b = f.read(1)
        f.seek(offset)
        f.write(bytes([b[0] ^ 0xFF]))


class RecordingInvalidator(CacheInvalidator):
    """
    Records every invalidated path; hook() runs before the real invalidation.
    """

    def __init__(self, hook=None):
        self.paths = []
        self.hook = hook

    def invalidate(self, path):
        self.paths.append(path)
        if self.hook is not None:
            self.hook(len(self.paths), path)
        super().invalidate(path)


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def log_messages():
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def staging_dir(tmp_path):
    path = tmp_path / "staging"
    path.mkdir()
    return str(path)


@pytest.fixture
def target_dir(tmp_path):
    path = tmp_path / "target"
    path.mkdir()
    return str(path)


@pytest.fixture
def tag():
    return make_run_tag()


@pytest.fixture
def digester():
    return Sha1Digester()


@pytest.fixture
def source():
    return UrandomContentSource()


@pytest.fixture
def writer(source, tag):
    return StagingWriter(source, tag)


@pytest.fixture
def rng():
    return random.Random(20240131)


@pytest.fixture
def small_budget():
    return Budget(min_file_size=1024, max_file_size=16 * 1024, bytes_per_pass=96 * 1024)


@pytest.fixture
def run_config(target_dir, staging_dir, small_budget):
    return RunConfig(target_base=target_dir, staging_base=staging_dir, pass_count=2, budget=small_budget)
