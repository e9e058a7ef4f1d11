"""Cube helpers: validation, matrix unrolling and angle normalization.

A cube is a 3D array ``(n_frames, ny, nx)`` with time along the first axis.
Decomposition code works on the unrolled ``(n_frames, ny * nx)`` matrix.
"""

import numpy as np

from coronastack.core.errors import ShapeMismatchError


def as_cube(cube) -> np.ndarray:
    """Return ``cube`` as a 3D numpy array without copying numpy input.

    Raises:
        ShapeMismatchError: If the array is not 3D.
    """
    arr = np.asarray(cube)
    if arr.ndim != 3:
        raise ShapeMismatchError(
            f"Expected a cube of shape (n_frames, ny, nx), got shape {arr.shape}"
        )
    return arr


def check_angles(n_frames: int, angles) -> np.ndarray:
    """Validate that there is exactly one angle per frame.

    Args:
        n_frames: Number of frames in the cube.
        angles: Angles in degrees.

    Returns:
        The angles as a 1D float array.

    Raises:
        ShapeMismatchError: If ``len(angles) != n_frames``.
    """
    angles = np.asarray(angles, dtype=float).reshape(-1)
    if angles.size != n_frames:
        raise ShapeMismatchError(
            f"Got {angles.size} angles for a cube with {n_frames} frames"
        )
    return angles


def flatten(cube) -> np.ndarray:
    """Unroll each frame of a cube into a row.

    Args:
        cube: Array of shape (n, ny, nx).

    Returns:
        Array of shape (n, ny * nx). A reshape, so no copy for contiguous input.

    Example:
        >>> flatten(np.ones((3, 2, 2))).shape
        (3, 4)
    """
    cube = as_cube(cube)
    n, ny, nx = cube.shape
    return cube.reshape(n, ny * nx)


def expand(matrix) -> np.ndarray:
    """Fold a ``(n, x * x)`` matrix back into a square-framed cube.

    Args:
        matrix: 2D array whose second axis is a perfect square.

    Returns:
        Array of shape (n, x, x).

    Raises:
        ShapeMismatchError: If the pixel count is not a perfect square.
    """
    matrix = np.asarray(matrix)
    if matrix.ndim != 2:
        raise ShapeMismatchError(f"Expected a 2D matrix, got shape {matrix.shape}")
    n, z = matrix.shape
    x = int(round(np.sqrt(z)))
    if x * x != z:
        raise ShapeMismatchError(
            f"Matrix of shape {matrix.shape} cannot be expanded into square frames"
        )
    return matrix.reshape(n, x, x)


def normalize_par_angles(angles) -> np.ndarray:
    """Make parallactic angles positive with no jumps greater than 180 degrees.

    Negative angles are wrapped into [0, 360). If the sorted angles still
    jump by more than 180 degrees the sequence crosses 0, so angles below
    180 are unwrapped by adding 360.

    Args:
        angles: Parallactic angles in degrees.

    Returns:
        New array of normalized angles (input order preserved).

    Example:
        >>> normalize_par_angles([-10, 50, 51])
        array([350., 410., 411.])
    """
    angles = np.array(angles, dtype=float)
    angles[angles < 0] += 360

    if np.any(np.abs(np.diff(np.sort(angles))) > 180):
        angles[angles < 180] += 360
    return angles
