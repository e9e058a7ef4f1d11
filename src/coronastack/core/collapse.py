"""Combining the frames of a cube into a single image.

Two paths are provided:

- the naive path, ``reduce_cube(derotate(cube, angles), method)``, which
  collapses the time axis with a per-pixel statistic (median, mean, ...);
- the noise-weighted path of Bottom et al. (2017), where each derotated
  frame is weighted by the inverse of the per-pixel temporal variance of the
  un-rotated cube.

Reference: Bottom et al. (2017), "Noise-weighted Angular Differential
Imaging", RNAAS, 1, 30
"""

import logging
from collections.abc import Callable

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np

from coronastack.core.cube import check_angles
from coronastack.core.errors import ShapeMismatchError
from coronastack.core.image_transforms import derotate, rotate

logger = logging.getLogger(__name__)

_METHODS = {
    "median": jnp.median,
    "mean": jnp.mean,
}


def resolve_method(method: str | Callable) -> Callable:
    """Return the reduction function for a method name or callable.

    A callable must accept ``(cube, axis=0)`` and return one frame.
    """
    if callable(method):
        return method
    try:
        return _METHODS[method]
    except KeyError:
        raise ValueError(
            f"Unknown method: {method}. Use 'median', 'mean' or a callable"
        ) from None


def _check_cube(cube) -> jax.Array:
    cube = jnp.asarray(cube)
    if cube.ndim != 3:
        raise ShapeMismatchError(
            f"Expected a cube of shape (n_frames, ny, nx), got shape {cube.shape}"
        )
    return cube


def reduce_cube(cube, method: str | Callable = "median") -> jax.Array:
    """Collapse the time axis of a cube with a per-pixel statistic.

    Args:
        cube: Array of shape (n_frames, ny, nx).
        method: 'median', 'mean', or a callable ``f(cube, axis=0) -> frame``.

    Returns:
        2D array of shape (ny, nx).
    """
    reducer = resolve_method(method)
    return jnp.asarray(reducer(_check_cube(cube), axis=0))


def _writable_cube(cube) -> np.ndarray:
    if not isinstance(cube, np.ndarray) or not cube.flags.writeable:
        raise TypeError(
            "inplace=True needs a writable numpy cube, "
            f"got {type(cube).__name__}"
        )
    if cube.ndim != 3:
        raise ShapeMismatchError(
            f"Expected a cube of shape (n_frames, ny, nx), got shape {cube.shape}"
        )
    return cube


def collapse(
    cube,
    angles=None,
    method: str | Callable = "median",
    deweight: bool = True,
    fill: float = 0.0,
    order: int = 1,
    max_workers: int | None = None,
    inplace: bool = False,
) -> jax.Array:
    """Combine all the frames of a cube, derotating first if angles are given.

    Args:
        cube: Array of shape (n_frames, ny, nx).
        angles: Optional angles in degrees, one per frame. Without angles the
            cube is reduced as-is with ``method``.
        method: Statistic for the naive path ('median', 'mean' or callable).
        deweight: If True (and angles are given), use the noise-weighted
            combination of `collapse_deweighted`; ``method`` is then unused.
        fill: Value for pixels that leave the field of view.
        order: Interpolation order for the rotation (0 or 1).
        max_workers: Thread count for the rotation, see `derotate`.
        inplace: Derotate ``cube`` in place instead of into a new array. The
            cube must then be a writable numpy array; on return it holds the
            derotated frames. The combined image is the same either way.

    Returns:
        2D array of shape (ny, nx).

    Raises:
        TypeError: If ``inplace`` is set and ``cube`` is not a writable
            numpy array.

    Example::

        X = np.ones((2, 3, 3))
        collapse(X, [0, 45], deweight=False, fill=np.nan)
        # [[nan, 1, nan],
        #  [1,   1, 1  ],
        #  [nan, 1, nan]]
    """
    if angles is None:
        return reduce_cube(cube, method)
    if deweight:
        return collapse_deweighted(
            cube,
            angles,
            fill=fill,
            order=order,
            max_workers=max_workers,
            inplace=inplace,
        )
    out = _writable_cube(cube) if inplace else None
    rotated = derotate(
        cube, angles, fill=fill, order=order, max_workers=max_workers, out=out
    )
    return reduce_cube(rotated, method)


def _is_zero_variance(varframe: jax.Array, cube: jax.Array) -> bool:
    # identical frames leave only rounding noise of order (n * eps * |x|)^2
    eps = jnp.finfo(varframe.dtype).eps
    scale = jnp.max(jnp.abs(cube))
    atol = (cube.shape[0] * eps * scale) ** 2
    return bool(jnp.all(varframe <= atol))


@jax.jit
def _weighted_combine(
    data: jax.Array, variance: jax.Array, fill: float
) -> jax.Array:
    out = jnp.sum(data / variance, axis=0) / jnp.sum(1.0 / variance, axis=0)
    return jnp.where(jnp.isnan(out), fill, out)


def collapse_deweighted(
    cube,
    angles,
    fill: float = 0.0,
    order: int = 1,
    max_workers: int | None = None,
    inplace: bool = False,
) -> jax.Array:
    """Noise-weighted derotate-and-combine (Bottom et al. 2017).

    The per-pixel temporal variance of the un-rotated cube is broadcast into
    a variance cube; data and variance cubes are derotated identically and
    combined as ``sum(data / var) / sum(1 / var)`` over time. Pixels where
    this is NaN (e.g. outside every rotated frame) are set to ``fill``.

    A cube with zero temporal variance everywhere carries no weighting
    information and falls back to the mean of the derotated cube.

    Args:
        cube: Array of shape (n_frames, ny, nx).
        angles: Angles in degrees, one per frame.
        fill: Value for pixels that leave the field of view.
        order: Interpolation order for the rotation (0 or 1).
        max_workers: Thread count for the rotation, see `derotate`.
        inplace: Derotate ``cube`` in place, see `collapse`. The variance is
            always taken from the frames as they were before the call.

    Returns:
        2D array of shape (ny, nx).

    Raises:
        ShapeMismatchError: If ``len(angles)`` differs from the number of frames.
        TypeError: If ``inplace`` is set and ``cube`` is not a writable
            numpy array.
    """
    out = _writable_cube(cube) if inplace else None
    data = _check_cube(cube)
    angles = check_angles(data.shape[0], angles)
    source = data if out is None else out
    kwargs = dict(fill=fill, order=order, max_workers=max_workers)

    # variance first: an in-place derotation overwrites the frames
    varframe = jnp.var(data, axis=0)
    if _is_zero_variance(varframe, data):
        logger.info("cube has no temporal variance, collapsing with the mean")
        rotated = derotate(source, angles, out=out, **kwargs)
        return reduce_cube(rotated, jnp.mean)

    varcube = jnp.broadcast_to(varframe, data.shape)
    rotated = derotate(source, angles, out=out, **kwargs)
    rotated_var = derotate(varcube, angles, **kwargs)
    return _weighted_combine(jnp.asarray(rotated), jnp.asarray(rotated_var), fill)


# =============================================================================
# Configured engine
# =============================================================================


class Derotator(eqx.Module):
    """Derotate-and-combine engine with fixed settings.

    Bundles the rotation and collapse settings so pipelines pass one object
    around instead of repeating keyword arguments. The thread count is an
    explicit setting; nothing is read from the environment.

    Example::

        engine = Derotator(fill=np.nan, max_workers=4)
        aligned = engine.derotate(cube, angles)
        image = engine(cube, angles)
    """

    fill: float
    order: int = eqx.field(static=True)
    max_workers: int | None = eqx.field(static=True)
    deweight: bool = eqx.field(static=True)
    method: str | Callable = eqx.field(static=True)

    def __init__(
        self,
        fill: float = 0.0,
        order: int = 1,
        max_workers: int | None = None,
        deweight: bool = True,
        method: str | Callable = "median",
    ):
        """Initialize the engine.

        Args:
            fill: Value for pixels that leave the field of view.
            order: Interpolation order (0 = nearest, 1 = bilinear).
            max_workers: Threads used to derotate; None runs a single
                vectorized call.
            deweight: Use the noise-weighted combination by default.
            method: Statistic for the naive combination.
        """
        if order not in (0, 1):
            raise ValueError(f"Interpolation order must be 0 or 1, got {order}")
        resolve_method(method)
        self.fill = fill
        self.order = order
        self.max_workers = max_workers
        self.deweight = deweight
        self.method = method

    def derotate(self, cube, angles, out: np.ndarray | None = None):
        """Rotate each frame counter-clockwise by its angle, see `derotate`."""
        return derotate(
            cube, angles, fill=self.fill, order=self.order,
            max_workers=self.max_workers, out=out,
        )

    def rotate(self, cube, angles, out: np.ndarray | None = None):
        """Undo `derotate`, see `rotate`."""
        return rotate(
            cube, angles, fill=self.fill, order=self.order,
            max_workers=self.max_workers, out=out,
        )

    def collapse(self, cube, angles=None, inplace: bool = False) -> jax.Array:
        """Combine a cube with this engine's settings, see `collapse`."""
        return collapse(
            cube,
            angles,
            method=self.method,
            deweight=self.deweight,
            fill=self.fill,
            order=self.order,
            max_workers=self.max_workers,
            inplace=inplace,
        )

    __call__ = collapse
