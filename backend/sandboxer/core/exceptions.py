"""
Sandboxer - Error Taxonomy

Only InvalidImageID (submit), KillFailure (kill) and RecordNotFound (status)
cross the API boundary synchronously. Every other provisioning error is
captured in the job's Failed record.
"""

from typing import Any, Optional


class SandboxerError(Exception):
    """Base class for all provisioning errors."""
    
    code = "SANDBOXER_ERROR"
    
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
    
    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class InvalidImageID(SandboxerError):
    """Raised when a requested image is not in the catalog."""
    code = "INVALID_IMAGE_ID"


class ImagePullFailure(SandboxerError):
    """Raised when an image is neither present locally nor pullable."""
    code = "IMAGE_PULL_FAILURE"


class ContainerCreateFailure(SandboxerError):
    """Raised when the engine refuses to create a container."""
    code = "CONTAINER_CREATE_FAILURE"


class ContainerStartFailure(SandboxerError):
    """Raised when a created container cannot be started."""
    code = "CONTAINER_START_FAILURE"

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        handle: Optional[Any] = None,
    ):
        super().__init__(message, cause)
        # The created container, so rollback can remove it
        self.handle = handle


class InspectFailure(SandboxerError):
    """Raised when a container's network address cannot be read."""
    code = "INSPECT_FAILURE"


class RegistrationFailure(SandboxerError):
    """Raised when an endpoint cannot be registered with service discovery."""
    code = "REGISTRATION_FAILURE"


class KillFailure(SandboxerError):
    """Raised when the engine fails to kill a container."""
    code = "KILL_FAILURE"


class RecordNotFound(SandboxerError):
    """Raised when no status record exists for a short ID."""
    code = "RECORD_NOT_FOUND"


class InvalidStateTransition(SandboxerError):
    """Raised when a record would leave a terminal state."""
    code = "INVALID_STATE_TRANSITION"


class DuplicateRecord(SandboxerError):
    """Raised when a status record already exists for a short ID."""
    code = "DUPLICATE_RECORD"


class ClientClosed(SandboxerError):
    """Raised when an engine or registry client is used after shutdown closed it."""
    code = "CLIENT_CLOSED"
