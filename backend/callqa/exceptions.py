class CallQAError(Exception):
    """Base class for call evaluation errors."""


class StoreUnavailable(CallQAError):
    """The relational store could not be reached or rejected the operation."""


class CallCreationError(CallQAError):
    """The initial call record could not be created; nothing was persisted."""


class BackendError(CallQAError):
    """A transcription or analysis backend failed or returned an unusable reply."""
