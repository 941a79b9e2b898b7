import dataclasses
from typing import List, Optional

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_MISMATCH = 2
EXIT_INTERRUPTED = 10


@dataclasses.dataclass(frozen=True)
class Budget:
    min_file_size: int
    max_file_size: int
    bytes_per_pass: int

    def __post_init__(self):
        assert 0 < self.min_file_size, self.min_file_size
        assert self.min_file_size <= self.max_file_size, (self.min_file_size, self.max_file_size)
        assert self.max_file_size <= self.bytes_per_pass, (self.max_file_size, self.bytes_per_pass)


@dataclasses.dataclass(frozen=True)
class TestFile:
    __test__ = False

    path: str
    size_bytes: int
    expected_digest: str


@dataclasses.dataclass(frozen=True)
class Mismatch:
    test_file: TestFile
    actual_digest: Optional[str]
    error: Optional[str] = None


@dataclasses.dataclass
class Pass:
    index: int
    files: List[TestFile] = dataclasses.field(default_factory=list)
    bytes_generated: int = 0
    generate_elapsed: float = 0.0
    verify_elapsed: float = 0.0
    mismatches: List[Mismatch] = dataclasses.field(default_factory=list)

    @property
    def number(self) -> int:
        return self.index + 1


@dataclasses.dataclass
class RunSummary:
    passes_completed: int = 0
    total_bytes: int = 0
    total_files: int = 0
    total_mismatches: int = 0
    generate_elapsed: float = 0.0
    verify_elapsed: float = 0.0
    cancelled: bool = False
    interrupted: bool = False

    def add(self, p: Pass) -> None:
        self.passes_completed += 1
        self.total_bytes += p.bytes_generated
        self.total_files += len(p.files)
        self.total_mismatches += len(p.mismatches)
        self.generate_elapsed += p.generate_elapsed
        self.verify_elapsed += p.verify_elapsed

    @property
    def exit_code(self) -> int:
        if self.interrupted:
            return EXIT_INTERRUPTED
        if self.total_mismatches:
            return EXIT_MISMATCH
        return EXIT_OK
