"""Error types raised by the packaging pipeline.

Each error carries the process exit code the CLI terminates with.
"""


class DebpackError(Exception):
    exit_code = 1


class ValidationError(DebpackError):
    """A required value is missing or malformed."""
    exit_code = 1


class ConflictError(DebpackError):
    """The target already exists and overwriting was not requested."""
    exit_code = 1


class BuildEnvironmentError(DebpackError):
    """A required tool or the environment builder is unavailable or failed."""
    exit_code = 2


class ArchiveIOError(DebpackError):
    """Copying, compressing or writing an archive failed."""
    exit_code = 3
