"""
Exceptions raised for changeset contract violations.

Field validation failures are NOT exceptions - they are stored as Err values
on the changeset and read back through its views. Everything here signals a
programming mistake at the call boundary and is never recovered internally.
"""
from dataclasses import dataclass


class ChangesetError(Exception):
    """Base class for changeset contract violations."""
    pass


class ContentMissingError(ChangesetError, ValueError):
    """Changeset constructed without underlying content."""
    pass


class MergeError(ChangesetError, ValueError):
    """Merge attempted with a non-changeset or a changeset over other content."""
    pass


class ErrorPayloadError(ChangesetError, ValueError):
    """Structured error passed to add_error() is missing 'value' or 'validation'."""
    pass


class SnapshotError(ChangesetError, ValueError):
    """Snapshot structure handed to restore() is malformed."""
    pass


class PrepareError(ChangesetError, ValueError):
    """Callback passed to prepare() did not return a mapping."""
    pass


class NotASequenceError(ChangesetError, TypeError):
    """Sequence utility invoked on something that is not a list, tuple or set."""
    pass


@dataclass
class PathError(ChangesetError):
    """
    Raised when a dotted path cannot be written.

    Attributes:
        path: The path that caused the error
        reason: Detailed explanation of the error
    """
    path: str
    reason: str

    def __str__(self) -> str:
        return f"Invalid path '{self.path}': {self.reason}"
