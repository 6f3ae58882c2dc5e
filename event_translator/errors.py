"""Exception types raised by the extraction and injection core."""


class EventTranslatorError(Exception):
    """Base class for all errors raised by this package."""


class InvalidStructure(EventTranslatorError):
    """A document or path string does not have the expected shape."""


class PathNotFound(EventTranslatorError):
    """A path could not be resolved for writing."""

    def __init__(self, path, reason: str = ""):
        self.path = path
        self.reason = reason
        msg = f"path not found: {path}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class InvalidCommand(EventTranslatorError):
    """An event command is missing a parameter its handler needs."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class UnsupportedCode(EventTranslatorError):
    """Raised in strict mode when an unrecognized command code is met."""

    def __init__(self, code: int, path):
        self.code = code
        self.path = path
        super().__init__(f"{path}: unsupported event code {code}")


class PluginConfigError(EventTranslatorError):
    """Malformed plugin field pattern or plugin config file."""


class DocumentLoadError(EventTranslatorError):
    """A data file could not be read or decoded."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")
