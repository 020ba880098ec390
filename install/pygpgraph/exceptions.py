"""Exception classes for the pygpgraph package."""


class GPGraphError(Exception):
    """Base exception for pygpgraph errors."""
    pass


class ConfigurationError(GPGraphError, ValueError):
    """Raised when a data bundle does not match the model schema."""
    pass


class CommandError(GPGraphError, ValueError):
    """Raised for the VOID sentinel command or a missing ``theta``."""
    pass


class BundleFormatError(GPGraphError, IOError):
    """Raised when a binary data bundle is truncated or malformed."""
    pass
