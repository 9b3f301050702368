# backend/app/errors.py


class SeparatorError(Exception):
    """Base class for every error raised by the separator backend."""


class ConfigurationError(SeparatorError):
    """Missing or unusable configuration (e.g. no Gemini API key)."""


class RemoteCallError(SeparatorError):
    """Transport / SDK failure while talking to Gemini."""


class ResponseShapeError(SeparatorError):
    """Gemini answered, but not with the structure we asked for."""


class RenderError(SeparatorError):
    """Pillow could not produce an output raster."""


class InvalidTransitionError(SeparatorError):
    """Operation not allowed in the session's current status."""


class LayerNotFoundError(SeparatorError):
    pass


class SessionNotFoundError(SeparatorError):
    pass
