class PostprocessError(ValueError):
    """
    Base class for errors raised by the post-processing stages.
    """


class ShapeError(PostprocessError):
    """
    Raw output shape does not match its buffer or the configured class count.
    """


class ConfigError(PostprocessError):
    """
    Invalid configuration value (threshold out of range, num_classes <= 0, ...).
    """
