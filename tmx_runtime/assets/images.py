"""
Image assets decoded with Pillow

Tileset spritesheets, per-tile images of collection tilesets and image
layers all go through load_image(). Images are always converted to RGBA
so that callers can rely on an alpha channel.
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from ..errors import ImageDecodeError

logger = logging.getLogger(__name__)


@dataclass
class ImageAsset:
    """
    A decoded (or, with decoding disabled, merely declared) image.

    path:   root-relative asset path
    width:  pixel width (0 when unknown)
    height: pixel height (0 when unknown)
    image:  RGBA PIL image, None when decoding was skipped
    """
    path: str
    width: int = 0
    height: int = 0
    image: Optional[Image.Image] = None

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def is_decoded(self) -> bool:
        return self.image is not None

    def crop(self, box: Tuple[int, int, int, int]) -> Optional[Image.Image]:
        """Cut a (left, top, right, bottom) region; None if not decoded."""
        if self.image is None:
            return None
        return self.image.crop(box)


def parse_trans(trans: Optional[str]) -> Optional[Tuple[int, int, int]]:
    """Parse Tiled's transparent-color attribute ("ff00ff" or "#ff00ff")."""
    if not trans:
        return None
    digits = trans.lstrip('#')
    if len(digits) != 6:
        return None
    value = int(digits, 16)
    return ((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)


def apply_color_key(image: Image.Image, key: Tuple[int, int, int]) -> Image.Image:
    """Make every pixel of exactly the key color fully transparent."""
    pixels = np.array(image.convert('RGBA'))
    r, g, b = key
    mask = (pixels[..., 0] == r) & (pixels[..., 1] == g) & (pixels[..., 2] == b)
    pixels[mask, 3] = 0
    return Image.fromarray(pixels, 'RGBA')


def decode_image(data: bytes, path: str, trans: Optional[str] = None) -> Image.Image:
    """
    Decode image bytes into an RGBA image.

    Raises ImageDecodeError when Pillow cannot read the data.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            image = img.convert('RGBA')
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(path, str(e)) from e

    key = parse_trans(trans)
    if key is not None:
        image = apply_color_key(image, key)
    return image


def load_image(loader, path: str, trans: Optional[str] = None,
               decode: bool = True, width: Optional[int] = None,
               height: Optional[int] = None) -> ImageAsset:
    """
    Load an image below the asset root.

    Parameters:
    -----------
    loader : RawLoader
        Source of the bytes
    path : str
        Root-relative path (already normalized)
    trans : str, optional
        Transparent color key from the Tiled <image> element
    decode : bool
        When False only the declared size is recorded
    width, height : int, optional
        Size declared in the Tiled file
    """
    if not decode:
        return ImageAsset(path=path, width=width or 0, height=height or 0)

    image = decode_image(loader.read_bytes(path), path, trans)
    if width and height and (image.width, image.height) != (width, height):
        logger.warning("Image %s is %dx%d but the Tiled file declares %dx%d",
                       path, image.width, image.height, width, height)
    logger.debug("Loaded image %s (%dx%d)", path, image.width, image.height)
    return ImageAsset(path=path, width=image.width, height=image.height, image=image)
