class FileDitError(Exception):
    pass


class SetupError(FileDitError):
    pass


class GenerationError(FileDitError):
    pass


class PlacementError(GenerationError):
    pass


class HashError(FileDitError):
    pass


class CacheInvalidationError(FileDitError):
    pass


class CleanupError(FileDitError):
    pass


class RunInterrupted(FileDitError):
    def __init__(self, signum: int) -> None:
        super().__init__(f"interrupted by signal {signum}")
        self.signum = signum
