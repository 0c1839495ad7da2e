"""Point coordinate transformation functions.

This module maps keypoint coordinates with resolved linear maps so that they stay
aligned with resampled images and masks. Coordinates are `(y, x)` pairs.
"""

from __future__ import annotations

import numpy as np


def transform_points(points: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Transform point coordinates using a 2x2 linear map.

    Args:
        points: Coordinate array of shape (n_points, 2) where each row is (y, x).
            NaN values are preserved.
        matrix: 2x2 matrix acting on (y, x) column vectors.

    Returns:
        Transformed coordinates with same shape and dtype as input.
    """
    if points.size == 0:
        return points.copy()

    result = points.copy()

    # Create mask for valid (non-NaN) points
    valid_mask = ~np.isnan(points).any(axis=-1)

    if valid_mask.any():
        valid_points = points[valid_mask].astype(np.float64)
        result[valid_mask] = valid_points @ np.asarray(matrix, dtype=np.float64).T

    return result

