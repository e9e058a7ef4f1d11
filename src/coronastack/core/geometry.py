"""Geometric utilities for spatially filtering image cubes.

Functions for frame centers, radial distances and the radial-band index
sets used by the annulus views, plus the parallactic-angle threshold used to
prune frames with negligible field rotation.

Index sets are host-side numpy arrays: they are computed once per view and
used for fancy indexing into caller-owned buffers.
"""

import logging
import warnings

import numpy as np

from coronastack.core.errors import InvalidGeometryError, PAThresholdWarning

logger = logging.getLogger(__name__)


def get_center(shape: tuple[int, ...]) -> tuple[float, float]:
    """Get the center coordinates of a frame (0-indexed geometric center).

    For an axis of size N, the geometric center is at (N-1)/2, so a single
    central pixel lands exactly on the center for odd sizes and the center
    falls between pixels for even sizes.

    Args:
        shape: Frame shape (ny, nx) or cube shape (n, ny, nx). Only the last
            two axes are used.

    Returns:
        Center coordinates (cy, cx).
    """
    ny, nx = shape[-2:]
    return ((ny - 1) / 2.0, (nx - 1) / 2.0)


def radial_distance(
    shape: tuple[int, ...],
    center: tuple[float, float] | None = None,
) -> np.ndarray:
    """Calculate radial distance from center for each pixel.

    Args:
        shape: Frame shape (ny, nx). Leading axes are ignored.
        center: Center coordinates (cy, cx). If None, uses the frame center.

    Returns:
        2D array of radial distances in pixels.
    """
    ny, nx = shape[-2:]
    if center is None:
        center = get_center(shape)
    cy, cx = center

    y, x = np.ogrid[:ny, :nx]
    return np.sqrt((y - cy) ** 2 + (x - cx) ** 2)


def check_band(rmin: float, rmax: float) -> None:
    """Raise InvalidGeometryError unless ``0 <= rmin < rmax``."""
    # written so that NaN bounds fail too
    if not (0 <= rmin < rmax):
        raise InvalidGeometryError(f"Invalid annulus region [{rmin}, {rmax}]")


def inside_band(
    rmin: float,
    rmax: float,
    center: tuple[float, float],
    position: tuple[float, float],
) -> bool:
    """Whether ``position`` lies in the band ``[rmin, rmax]`` about ``center``."""
    dy = position[0] - center[0]
    dx = position[1] - center[1]
    r = np.sqrt(dy**2 + dx**2)
    return bool(rmin <= r <= rmax)


def band_mask(
    shape: tuple[int, ...],
    rmin: float,
    rmax: float,
    center: tuple[float, float] | None = None,
) -> np.ndarray:
    """Boolean mask of the pixels whose distance to center is in ``[rmin, rmax]``.

    Both ends are inclusive.

    Args:
        shape: Frame shape (ny, nx). Leading axes are ignored.
        rmin: Inner radius in pixels.
        rmax: Outer radius in pixels (may be ``inf``).
        center: Center coordinates (cy, cx). If None, uses the frame center.

    Returns:
        2D boolean array.
    """
    check_band(rmin, rmax)
    r = radial_distance(shape, center)
    return (r >= rmin) & (r <= rmax)


def band_indices(
    shape: tuple[int, ...],
    rmin: float,
    rmax: float,
    center: tuple[float, float] | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """Compute the spatial index set of a radial band.

    The ordering is row-major and deterministic, so a matrix flattened with
    these indices can be scattered back with the same indices.

    Args:
        shape: Frame shape (ny, nx). Leading axes are ignored.
        rmin: Inner radius in pixels.
        rmax: Outer radius in pixels (may be ``inf``).
        center: Center coordinates (cy, cx). If None, uses the frame center.

    Returns:
        Tuple of (rows, cols) integer arrays of equal length.

    Example:
        >>> rows, cols = band_indices((101, 101), 5, 20)
        >>> len(rows)
        1188
    """
    rows, cols = np.nonzero(band_mask(shape, rmin, rmax, center))
    logger.debug(
        "band [%s, %s] on %s frame: %d pixels", rmin, rmax, shape[-2:], rows.size
    )
    return rows, cols


def annuli_radii(
    shape: tuple[int, ...],
    width: float,
    inner: float = 0.0,
    outer: float | None = None,
) -> np.ndarray:
    """Centers of contiguous rings of ``width`` covering ``[inner, outer]``.

    The first ring is centered at ``inner + width/2`` and the last at
    ``outer - width/2``. An infinite ``outer`` is replaced by a radius that
    covers every corner of the frame.

    Args:
        shape: Frame shape (ny, nx). Leading axes are ignored.
        width: Ring width in pixels.
        inner: Inner radius of the first ring.
        outer: Outer radius of the last ring. Defaults to ``(nx + 1) / 2``.

    Returns:
        1D array of ring center radii.
    """
    nx = shape[-1]
    if outer is None:
        outer = (nx + 1) / 2
    if not width > 0:
        raise InvalidGeometryError(f"Annulus width must be positive, got {width}")
    check_band(inner, outer)

    first_r = inner + width / 2
    if np.isfinite(outer):
        final_r = outer - width / 2
    else:
        max_length = (nx + 1) / 2
        final_r = np.sqrt(2 * max_length**2) + 1 / np.sqrt(2)

    if final_r < first_r:
        raise InvalidGeometryError(
            f"No annulus of width {width} fits in [{inner}, {outer}]"
        )
    # small slack so a range that ends exactly on final_r keeps its last ring
    n_rings = int(np.floor((final_r - first_r) / width + 1e-9)) + 1
    return first_r + width * np.arange(n_rings)


def pa_threshold(fwhm: float, radius: float, threshold: float = 1.0) -> float:
    """Minimum parallactic-angle change (degrees) for a given loss tolerance.

    A frame is only worth keeping if the field has rotated by at least
    ``threshold * fwhm`` along the arc at ``radius``.

    Args:
        fwhm: Full width at half maximum in pixels.
        radius: Representative radius of the annulus in pixels.
        threshold: Rotation tolerance in units of FWHM.

    Returns:
        Angle threshold in degrees.
    """
    if not radius > 0:
        raise InvalidGeometryError(f"Radius must be positive, got {radius}")
    return float(np.rad2deg(2 * np.arctan(threshold * fwhm / (2 * radius))))


def clamp_pa_threshold(pa_thresh: float, angles) -> float:
    """Clamp a threshold to 90% of the angular range spanned by ``angles``.

    Clamping is an accuracy/speed tradeoff, not an error: it is signaled with
    a ``PAThresholdWarning`` so callers can decide whether to care.

    Args:
        pa_thresh: Threshold in degrees, e.g. from `pa_threshold`.
        angles: Parallactic angles in degrees.

    Returns:
        The threshold, possibly reduced.
    """
    angles = np.asarray(angles, dtype=float)
    max_thresh = 0.9 * float(np.max(angles) - np.min(angles))
    if pa_thresh > max_thresh:
        message = (
            f"PA threshold {pa_thresh:.3f} deg is too large for the angular range; "
            f"clamped to {max_thresh:.3f} deg"
        )
        logger.info(message)
        warnings.warn(message, PAThresholdWarning, stacklevel=2)
        return max_thresh
    return pa_thresh


def prune_frames(angles, pa_thresh: float) -> np.ndarray:
    """Select frames that have rotated by at least ``pa_thresh`` degrees.

    The first frame is always kept; frame ``i`` is kept iff
    ``|angles[i] - angles[last_kept]| >= pa_thresh``. Frames are never
    reordered.

    Args:
        angles: Parallactic angles in degrees, one per frame.
        pa_thresh: Minimum angle change in degrees.

    Returns:
        1D integer array of kept frame indices (ascending).
    """
    angles = np.asarray(angles, dtype=float)
    if angles.size == 0:
        return np.zeros(0, dtype=int)

    keep = [0]
    for i in range(1, angles.size):
        if abs(angles[i] - angles[keep[-1]]) >= pa_thresh:
            keep.append(i)
    logger.debug(
        "kept %d of %d frames (threshold %.3f deg)", len(keep), angles.size, pa_thresh
    )
    return np.asarray(keep, dtype=int)
