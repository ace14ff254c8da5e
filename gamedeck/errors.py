"""Exception types shared by the job, run and catalog layers."""


class JobNotFound(LookupError):
    """No job with the given id is tracked by the registry."""


class RunNotFound(LookupError):
    """No BuildTools run with the given id is known."""


class InvalidRunRequest(ValueError):
    """A BuildTools request was rejected before anything was started."""


class CatalogEntryNotFound(LookupError):
    """The requested version catalog entry does not exist."""


class JobCancelled(Exception):
    """Raised by job work that honoured its cancellation signal."""
