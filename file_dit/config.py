import os
import dataclasses
from typing import Optional

from file_dit.model import Budget

APP_NAME = "file-dit"

KiB = 1024
MiB = 1024 * KiB

DEFAULT_TARGET_BASE = "."
DEFAULT_STAGING_BASE = "/dev/shm"
DEFAULT_PASS_COUNT = 0
DEFAULT_MIN_FILE_SIZE = 4 * KiB
DEFAULT_MAX_FILE_SIZE = 1 * MiB
DEFAULT_BYTES_PER_PASS = 100 * MiB

ENV_TARGET_BASE = "FILE_DIT_DIR"
ENV_STAGING_BASE = "FILE_DIT_RAM_DIR"
ENV_HASH = "FILE_DIT_HASH"
ENV_SOURCE = "FILE_DIT_SOURCE"


@dataclasses.dataclass
class RunConfig:
    target_base: str = DEFAULT_TARGET_BASE
    staging_base: str = DEFAULT_STAGING_BASE
    pass_count: int = DEFAULT_PASS_COUNT
    budget: Budget = dataclasses.field(
        default_factory=lambda: Budget(DEFAULT_MIN_FILE_SIZE, DEFAULT_MAX_FILE_SIZE, DEFAULT_BYTES_PER_PASS)
    )
    digest_name: Optional[str] = None
    content_source_name: Optional[str] = None
    show_perf: bool = False
    verbose: bool = False

    def __post_init__(self):
        assert self.target_base, "empty target directory"
        assert self.staging_base, "empty staging directory"
        assert self.pass_count >= 0, self.pass_count
        assert isinstance(self.budget, Budget), f"invalid budget {self.budget}"
        self.target_base = os.path.abspath(self.target_base)
        self.staging_base = os.path.abspath(self.staging_base)

    @property
    def unbounded(self) -> bool:
        return self.pass_count == 0
