# Subsync Errors
# Exception hierarchy shared by the remote gateway, engine and CLI


class SubsyncError(Exception):
    """Base class for subsync errors."""


class ConfigError(SubsyncError):
    """Configuration is present but unusable."""


class RemoteError(SubsyncError):
    """A remote call did not take effect."""


class NetworkError(RemoteError):
    """The remote store could not be reached."""


class AuthenticationError(RemoteError):
    """The remote store rejected the bearer token."""


class RemoteHTTPError(RemoteError):
    """The remote store answered with a non-success status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code
