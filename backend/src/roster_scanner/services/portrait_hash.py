from __future__ import annotations

import numpy as np

from .roster_types import RawImage

HASH_GRID_SIZE = 16


def hash_hex_length(grid_size: int = HASH_GRID_SIZE) -> int:
    return grid_size * grid_size // 4


def cover_square(left: int, top: int, width: int, height: int) -> tuple[int, int, int]:
    """Largest square centred in the crop: ``(start_x, start_y, size)``."""
    size = min(width, height)
    start_x = left + (width - size) // 2
    start_y = top + (height - size) // 2
    return start_x, start_y, size


def compute_portrait_hash(
    image: RawImage,
    left: int,
    top: int,
    width: int,
    height: int,
    grid_size: int = HASH_GRID_SIZE,
) -> str:
    """Average hash of a crop, read straight from the RGBA buffer.

    Each of the ``grid_size``² blocks contributes its centre pixel (point
    sampling, no averaging), converted to luma. A bit is set when the sample
    is at or above the mean. The first sample is the most significant bit.
    """
    start_x, start_y, size = cover_square(left, top, width, height)
    block = size / grid_size

    offsets = (np.arange(grid_size) + 0.5) * block
    xs = np.clip(np.floor(start_x + offsets).astype(np.int64), 0, image.width - 1)
    ys = np.clip(np.floor(start_y + offsets).astype(np.int64), 0, image.height - 1)

    pixels = image.pixels()
    samples = pixels[ys[:, None], xs[None, :]].astype(np.int64)
    # Luma scaled by 1000 keeps the mean comparison in exact integer math.
    gray = 299 * samples[..., 0] + 587 * samples[..., 1] + 114 * samples[..., 2]
    flat = gray.reshape(-1)
    bits = flat * flat.size >= int(flat.sum())

    value = 0
    for bit in bits:
        value = (value << 1) | int(bit)
    return f"{value:0{hash_hex_length(grid_size)}x}"


def hamming_distance(hash_a: str, hash_b: str) -> int:
    return (int(hash_a, 16) ^ int(hash_b, 16)).bit_count()
