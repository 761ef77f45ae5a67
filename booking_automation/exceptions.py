"""
Pipeline exceptions

Transient errors are retried by the worker with backoff, everything else
either short-circuits cleanly or fails the job.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for booking automation errors"""

    pass


class TransientError(PipelineError):
    """A dependency failed in a way that a later attempt can fix"""

    pass


class StoreUnavailableError(TransientError):
    """Document store could not serve the request"""

    pass


class TransactionConflictError(TransientError):
    """Transaction kept conflicting and was abandoned without writing"""

    pass


class TransportUnavailableError(TransientError):
    """Push transport call failed as a whole"""

    pass


class DeliveryError(TransientError):
    """A single push message was rejected"""

    def __init__(self, message: str, error_code: Optional[str] = None, invalid_token: bool = False):
        super().__init__(message)
        self.error_code = error_code
        self.invalid_token = invalid_token
