"""Image encoders backed by Pillow"""

import io
import logging
import threading
from typing import Optional, Tuple

from PIL import Image, features

from .errors import ConverterPreparationError, EncodeError

logger = logging.getLogger(__name__)

# Oldest libwebp Pillow may be linked against
MIN_LIBWEBP_VERSION = (1, 0, 0)

# WebP cannot store an image taller or wider than this
WEBP_MAX_DIMENSION = 16383

_prepare_lock = threading.Lock()
_prepared_version: Optional[str] = None


def _parse_version(version: str) -> Tuple[int, ...]:
    parts = []
    for part in version.split("."):
        digits = "".join(ch for ch in part if ch.isdigit())
        if not digits:
            break
        parts.append(int(digits))
    return tuple(parts)


def prepare_webp() -> str:
    """Verify Pillow can encode WebP with a recent enough libwebp.

    Runs the check at most once per process; later calls return the cached
    version. Not safe to run concurrently with itself, hence the lock.
    """
    global _prepared_version
    with _prepare_lock:
        if _prepared_version is not None:
            return _prepared_version

        if not features.check("webp"):
            raise ConverterPreparationError("Pillow was built without WebP support")

        version = features.version("webp")
        if version is None:
            raise ConverterPreparationError("Could not determine the libwebp version")
        if _parse_version(version) < MIN_LIBWEBP_VERSION:
            wanted = ".".join(str(p) for p in MIN_LIBWEBP_VERSION)
            raise ConverterPreparationError(
                f"unexpected webp version: got {version}, want >= {wanted}"
            )

        logger.debug("WebP encoder ready (libwebp %s)", version)
        _prepared_version = version
        return version


def _encodable(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = "A" in img.getbands() or "transparency" in img.info
    return img.convert("RGBA" if has_alpha else "RGB")


class WebPEncoder:
    """Encodes Pillow images to WebP bytes"""

    extension = ".webp"

    def __init__(self, method: int = 4):
        self.method = method

    def prepare(self) -> str:
        return prepare_webp()

    def encode(self, img: Image.Image, quality: int) -> bytes:
        if not 0 <= quality <= 100:
            raise ValueError(f"quality must be between 0 and 100, got {quality}")
        width, height = img.size
        # Splitting only shortens pages, so a too-wide page always fails here
        if width > WEBP_MAX_DIMENSION:
            raise EncodeError(
                f"image width {width}px exceeds the WebP width limit of {WEBP_MAX_DIMENSION}px"
            )
        if height > WEBP_MAX_DIMENSION:
            raise EncodeError(
                f"image height {height}px exceeds the WebP height limit of {WEBP_MAX_DIMENSION}px"
            )
        buf = io.BytesIO()
        try:
            _encodable(img).save(buf, "WEBP", quality=quality, method=self.method)
        except (OSError, ValueError) as e:
            raise EncodeError(f"Failed to encode {width}x{height} image to WebP: {e}") from e
        return buf.getvalue()
