"""Exception classes for the studio configuration and adapter layer."""


class StudioError(Exception):
    """Base exception for all studio errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SettingsError(StudioError):
    """Raised when the dashboard's own settings are invalid."""

    pass


class ConfigNotFoundError(StudioError):
    """Raised when no configuration file could be located."""

    pass


class ConfigLoadError(StudioError):
    """Raised when a loading strategy cannot produce a usable module."""

    def __init__(self, message: str, path: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.path = path


class UnsupportedSourceError(ConfigLoadError):
    """Raised when a source file cannot be executed natively."""

    pass


class ConfigExtractionError(StudioError):
    """Raised when a configuration literal cannot be parsed."""

    def __init__(self, message: str, position: int | None = None, details: dict | None = None):
        if position is not None:
            message = f"{message} (at offset {position})"
        super().__init__(message, details)
        self.position = position


class AdapterUnavailableError(StudioError):
    """Raised when no usable persistence adapter exists for a configuration."""

    pass


class OperationDegraded(StudioError):
    """Describes an adapter call that was served by the mock fallback."""

    def __init__(self, operation: str, model: str | None, cause: BaseException | None):
        self.operation = operation
        self.model = model
        self.cause = cause

        target = f"{operation}({model})" if model else operation
        reason = f": {cause!r}" if cause is not None else ""
        super().__init__(f"Adapter operation {target} degraded to mock{reason}")
