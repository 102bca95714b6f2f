class JobError(Exception):
    """Base exception for scheduler errors."""
    pass

class ConfigurationError(JobError):
    pass

class StoreUnavailableError(JobError):
    """The job store could not be reached, timed out or throttled the call."""
    pass

class PublishError(JobError):
    pass

class PublishTransientError(PublishError):
    """Timeouts, throttling, server errors. Worth retrying."""
    pass

class PublishPermanentError(PublishError):
    """The event router rejected the payload. Retrying will not help."""
    pass

class DuplicateJobError(JobError):
    def __init__(self, partition_key, sort_key):
        super().__init__(f"Job {partition_key}/{sort_key} already exists")
