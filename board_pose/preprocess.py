"""Reduce incoming frames to the single-channel image the detector needs."""

import cv2
import numpy as np

from .errors import ImageDecodeError
from .frame_source import CameraFrame


# Bayer pattern names follow the sensor layout; OpenCV names the conversion
# after the second row, hence the apparent mismatch.
BAYER_CODES = {
    "bayer_rggb8": cv2.COLOR_BayerBG2BGR,
    "bayer_bggr8": cv2.COLOR_BayerRG2BGR,
    "bayer_gbrg8": cv2.COLOR_BayerGR2BGR,
    "bayer_grbg8": cv2.COLOR_BayerGB2BGR,
}

COLOR_CODES = {
    "bgr8": cv2.COLOR_BGR2GRAY,
    "rgb8": cv2.COLOR_RGB2GRAY,
    "bgra8": cv2.COLOR_BGRA2GRAY,
    "rgba8": cv2.COLOR_RGBA2GRAY,
}


def to_gray(frame: CameraFrame) -> np.ndarray:
    """Return an 8-bit grayscale copy of ``frame.image``.

    Raises:
        ImageDecodeError: unsupported encoding or an image that does not match it.
    """
    image = frame.image
    encoding = (frame.encoding or "").lower()
    if image is None or not isinstance(image, np.ndarray) or image.size == 0:
        raise ImageDecodeError(f"frame {frame.seq}: empty image ({encoding or 'no encoding'})")
    if image.dtype != np.uint8:
        raise ImageDecodeError(f"frame {frame.seq}: expected 8-bit data, got {image.dtype}")

    try:
        if encoding == "mono8":
            if image.ndim == 3 and image.shape[2] == 1:
                image = image[:, :, 0]
            if image.ndim != 2:
                raise ImageDecodeError(f"frame {frame.seq}: mono8 image has shape {image.shape}")
            return image.copy()

        if encoding.startswith("bayer"):
            code = BAYER_CODES.get(encoding)
            if code is None:
                raise ImageDecodeError(f"Unsupported encoding '{frame.encoding}'")
            if image.ndim != 2:
                raise ImageDecodeError(f"frame {frame.seq}: bayer image has shape {image.shape}")
            bgr = cv2.cvtColor(image, code)
            return cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)

        code = COLOR_CODES.get(encoding)
        if code is None:
            raise ImageDecodeError(f"Unsupported encoding '{frame.encoding}'")
        expected = 4 if encoding.endswith("a8") else 3
        if image.ndim != 3 or image.shape[2] != expected:
            raise ImageDecodeError(f"frame {frame.seq}: {encoding} image has shape {image.shape}")
        return cv2.cvtColor(image, code)
    except cv2.error as exc:
        raise ImageDecodeError(f"frame {frame.seq}: conversion failed: {exc}") from exc
