"""Error types raised by the task store."""


class BacklogError(Exception):
    """Base class for task store errors."""


class ParseDegraded(BacklogError):
    """Frontmatter could not be parsed; the document was kept as plain body.

    Never raised to callers. The codec records it on the parsed document.
    """


class NotFoundError(BacklogError):
    """Requested task or task file does not exist."""


class ReadOnlyViolationError(BacklogError):
    """Write attempted on a variant that is not locally editable."""


class InvalidPatchError(BacklogError, ValueError):
    """Patch contains unknown fields or invalid values."""


class IoFailureError(BacklogError):
    """Disk read or write failed."""


class GitError(BacklogError):
    """A git command failed."""
