"""Exception types raised by pytestio."""


class PytestioError(Exception):
    """Base class for pytestio errors."""


class ServiceResolutionError(PytestioError):
    """A configured service identifier could not be resolved."""


class HookError(PytestioError):
    """A service hook raised while being dispatched.

    Attributes:
        hook_name: Name of the hook being dispatched
        service: Name of the service whose hook failed
    """

    def __init__(self, hook_name: str, service: str, cause: BaseException):
        super().__init__(f"Service '{service}' failed in hook '{hook_name}': {cause}")
        self.hook_name = hook_name
        self.service = service
        self.__cause__ = cause


class SessionOpenError(PytestioError):
    """The remote session could not be created."""


class RecordingError(PytestioError):
    """Screen recording could not be started, stopped or attached."""


class EncodeError(RecordingError):
    """The external encoder failed to produce a video."""


class EncodeTimeoutError(EncodeError):
    """The external encoder exceeded its wall-clock limit and was killed."""
