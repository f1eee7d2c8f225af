# Copyright (c) 2025 Rafik Hamza, Ph.D.
# All rights reserved.
#
# Date of last edit: November 28, 2025
#
# Description:
# Image file adapter: decodes image files into raw pixel buffers and writes them back.
"""
Image File I/O
==============

Pillow-backed loading and saving of ``scramble_core.Image`` buffers.

- The container format of the source file is remembered and reused on save,
  whatever extension the output path has.
- JPEG output is written at maximum quality without chroma subsampling and
  WebP output is written lossless, so saving adds as little loss as the
  container allows.
- Palette images keep their indices; the palette is padded to 256 entries on
  save because scrambled indices can point anywhere in 0..255.
- Lossy containers cannot carry scrambled data exactly; use PNG (or another
  lossless format) for images that must decrypt bit-exactly.
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Union

from PIL import Image as PILImage, UnidentifiedImageError

from scramble_core import Image

PathLike = Union[str, os.PathLike]

# Bytes per pixel for the 8-bit color models the scrambler accepts
CHANNELS_BY_MODE: Dict[str, int] = {
    'L': 1,
    'P': 1,
    'LA': 2,
    'RGB': 3,
    'YCbCr': 3,
    'RGBA': 4,
    'CMYK': 4,
}

# Fallback color model when an in-memory image has none
MODE_BY_CHANNELS: Dict[int, str] = {1: 'L', 2: 'LA', 3: 'RGB', 4: 'RGBA'}

DEFAULT_FORMAT = 'PNG'

# Scrambled palette indices use the whole 0..255 range
PALETTE_ENTRIES = 256

# Encoder settings per container, chosen for the least possible loss.
# GIF must not optimize, or the writer renumbers the palette indices.
ENCODER_OPTIONS: Dict[str, Dict[str, Any]] = {
    'JPEG': {'quality': 100, 'subsampling': 0},
    'MPO': {'quality': 100, 'subsampling': 0},
    'GIF': {'optimize': False},
    'WEBP': {'lossless': True, 'quality': 100},
}

# ==================== ERRORS ====================

class ImageIOError(Exception):
    """Base class for failures at the image file boundary."""

class ImageFormatError(ImageIOError):
    """The file's image format could not be recognized."""

class ImageDecodeError(ImageIOError):
    """The file claims a format but its contents could not be decoded."""

class ImageEncodeError(ImageIOError):
    """Writing the image failed, either on I/O or in the encoder."""

# ==================== LOAD / SAVE ====================

def load_image(path: PathLike) -> Image:
    try:
        pil = PILImage.open(path)
    except UnidentifiedImageError as e:
        raise ImageFormatError(f"Cannot identify image format of '{path}'") from e
    except OSError as e:
        raise ImageDecodeError(f"Cannot read '{path}': {e}") from e

    with pil:
        fmt = pil.format
        if fmt is None:
            raise ImageFormatError(f"Cannot identify image format of '{path}'")
        try:
            pil.load()
        except (OSError, SyntaxError, ValueError) as e:
            raise ImageDecodeError(f"Malformed {fmt} data in '{path}': {e}") from e

        if pil.mode == '1':
            pil = pil.convert('L')
        mode = pil.mode
        if mode not in CHANNELS_BY_MODE:
            raise ImageDecodeError(f"Unsupported color model '{mode}' in '{path}' "
                                   f"(supported: {', '.join(CHANNELS_BY_MODE)})")

        palette = pil.getpalette() if mode == 'P' else None
        return Image(
            width=pil.width,
            height=pil.height,
            channel_count=CHANNELS_BY_MODE[mode],
            pixels=pil.tobytes(),
            mode=mode,
            format=fmt,
            palette=palette,
        )

def _full_palette(palette: List[int]) -> List[int]:
    """Pad an RGB palette to 256 entries so encoders keep 8-bit indices."""
    size = 3 * PALETTE_ENTRIES
    return list(palette[:size]) + [0] * (size - len(palette))

def _to_pil(image: Image) -> PILImage.Image:
    mode = image.mode or MODE_BY_CHANNELS[image.channel_count]
    if CHANNELS_BY_MODE.get(mode) != image.channel_count:
        raise ImageEncodeError(f"Color model '{mode}' does not hold {image.channel_count} bytes per pixel")
    pil = PILImage.frombytes(mode, (image.width, image.height), image.pixels)
    if image.palette is not None:
        pil.putpalette(_full_palette(image.palette))
    return pil

def save_image(path: PathLike, image: Image) -> None:
    fmt = (image.format or DEFAULT_FORMAT).upper()
    options = ENCODER_OPTIONS.get(fmt, {})
    try:
        pil = _to_pil(image)
        pil.save(path, format=fmt, **options)
    except ImageEncodeError:
        raise
    except (OSError, ValueError, KeyError) as e:
        raise ImageEncodeError(f"Cannot write {fmt} image to '{path}': {e}") from e

__all__ = [
    'ImageIOError',
    'ImageFormatError',
    'ImageDecodeError',
    'ImageEncodeError',
    'CHANNELS_BY_MODE',
    'ENCODER_OPTIONS',
    'load_image',
    'save_image',
]
