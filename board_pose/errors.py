"""Exception types raised by the pose service.

A board that is simply not visible is not an error: the detector returns
``None`` and the frame is counted as a miss.
"""


class PoseError(Exception):
    """Base class for all pose service errors."""


class PoseIOError(PoseError, IOError):
    """A pose file could not be written or read."""


class PoseFormatError(PoseError, ValueError):
    """A pose file was readable but its content is malformed."""


class ImageDecodeError(PoseError, ValueError):
    """An incoming frame has an unsupported encoding or a broken buffer."""


class RequestTimeout(PoseError, TimeoutError):
    """No detection succeeded before the request deadline."""


class RequestBusy(PoseError, RuntimeError):
    """A pose request is already waiting for a frame."""


class RequestCancelled(PoseError):
    """An outstanding pose request was cancelled."""
