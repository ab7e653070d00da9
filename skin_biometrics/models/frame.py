import hashlib
import io
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
from PIL import Image


class RasterFrame:
    """
    A single captured image, held as a dense RGBA pixel buffer.

    The buffer is copied and made read-only on construction so one analysis
    pass can never alter the frame it was given.

    Parameters:
    ----------
    pixels : numpy.ndarray
        Array of shape (height, width, 4) or (height, width, 3) in RGB(A)
        channel order. Three-channel input gets an opaque alpha channel.
    source_bytes : bytes, optional
        The encoded file the frame was decoded from. When present it is the
        basis of the frame fingerprint.
    """
    def __init__(self, pixels, source_bytes=None):
        pixels = np.asarray(pixels)

        if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
            raise ValueError(f"Expected an (H, W, 3|4) pixel array, got shape {pixels.shape}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise ValueError("Frame must have non-zero width and height")

        pixels = np.clip(pixels, 0, 255).astype(np.uint8)

        if pixels.shape[2] == 3:
            alpha = np.full(pixels.shape[:2] + (1,), 255, dtype=np.uint8)
            pixels = np.concatenate([pixels, alpha], axis=2)
        else:
            pixels = pixels.copy()

        pixels.setflags(write=False)
        self._pixels = pixels
        self._source_bytes = source_bytes

    @classmethod
    def from_bytes(cls, data):
        """Decode an encoded image (JPEG, PNG, ...) into a frame."""
        try:
            image = Image.open(io.BytesIO(data))
            image = image.convert('RGBA')
        except (OSError, Image.DecompressionBombError) as e:
            raise ValueError(f"Could not decode image data: {e}") from e
        return cls(np.array(image), source_bytes=bytes(data))

    @classmethod
    def from_path(cls, path):
        with open(path, 'rb') as f:
            return cls.from_bytes(f.read())

    @property
    def pixels(self):
        return self._pixels

    @property
    def rgb(self):
        return self._pixels[:, :, :3]

    @property
    def width(self):
        return self._pixels.shape[1]

    @property
    def height(self):
        return self._pixels.shape[0]

    @property
    def source_bytes(self):
        return self._source_bytes

    def fingerprint(self):
        """
        Content hash used as the analysis cache key.

        Frames decoded from a file hash the file bytes; in-memory frames
        hash their dimensions together with the raw pixel buffer.
        """
        digest = hashlib.sha256()
        if self._source_bytes is not None:
            digest.update(self._source_bytes)
        else:
            digest.update(f"{self.width}x{self.height}:".encode('ascii'))
            digest.update(self._pixels.tobytes())
        return digest.hexdigest()

    def to_jpeg_bytes(self, quality=90):
        buffer = io.BytesIO()
        Image.fromarray(np.ascontiguousarray(self.rgb)).save(buffer, format='JPEG', quality=quality)
        return buffer.getvalue()

    def __repr__(self):
        return f"RasterFrame(width={self.width}, height={self.height})"


@dataclass(frozen=True)
class FaceBounds:
    """Approximate face location. A zero width means no face was found."""
    cx: float
    cy: float
    face_width: float
    face_height: float

    @property
    def found(self):
        return self.face_width > 0

    @property
    def center(self):
        return (self.cx, self.cy)


@dataclass(frozen=True)
class RegionOfInterest:
    """
    An exposure-normalized rectangular crop of a frame.

    ``pixels`` holds float32 RGB values on the 0-255 scale after the gain has
    been applied; ``source_luminance`` is the mean luminance of the crop
    before normalization.
    """
    name: str
    rect: Tuple[int, int, int, int]
    pixels: np.ndarray = field(repr=False)
    source_luminance: float = 0.0
    gain: float = 1.0
    degenerate: bool = False

    @property
    def is_empty(self):
        return self.pixels.size == 0

    @property
    def is_degenerate(self):
        return self.degenerate

    @property
    def width(self):
        return self.pixels.shape[1] if self.pixels.ndim == 3 else 0

    @property
    def height(self):
        return self.pixels.shape[0] if self.pixels.ndim == 3 else 0

    def flat_pixels(self, stride=1):
        """Pixels as an (N, 3) array, optionally keeping every ``stride``-th one."""
        if self.is_empty:
            return np.empty((0, 3), dtype=np.float32)
        return self.pixels.reshape(-1, 3)[::stride]


def empty_region(name, rect: Optional[Tuple[int, int, int, int]] = None):
    return RegionOfInterest(
        name=name,
        rect=rect or (0, 0, 0, 0),
        pixels=np.empty((0, 0, 3), dtype=np.float32),
    )
