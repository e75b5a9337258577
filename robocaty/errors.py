"""Exception types raised during RoboCaty startup."""


class RoboCatyError(Exception):
    """Base class for RoboCaty errors."""


class ConfigError(RoboCatyError):
    """Raised when the mapping file or runtime configuration is unusable."""


class BackendConnectionError(RoboCatyError, ConnectionError):
    """Raised when the ADS source or the robot target cannot be reached."""
