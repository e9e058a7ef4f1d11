"""Image transformation utilities: frame rotation.

Rotation sign convention (used by every call site in coronastack): a
positive angle rotates the frame content counter-clockwise as displayed
with row 0 at the top, so ``derotate(cube, parallactic_angles)`` aligns a
field that rotated clockwise on the detector. A pixel at the top-center of
a 3x3 frame moves to the left-center under a +90 degree rotation.

Resampling is delegated to ``jax.scipy.ndimage.map_coordinates`` (order 0 or
1). An output pixel whose source position falls outside the original frame,
i.e. outside ``[0, ny - 1] x [0, nx - 1]``, is set to ``fill``. A rotation by
exactly zero is a no-op.
"""

import functools
import logging
from concurrent.futures import ThreadPoolExecutor

import jax
import jax.numpy as jnp
import numpy as np
from jax.scipy.ndimage import map_coordinates

from coronastack.core.cube import check_angles
from coronastack.core.errors import ShapeMismatchError
from coronastack.core.geometry import get_center

logger = logging.getLogger(__name__)


def ccw_rotation_matrix(rotation_deg: float) -> jax.Array:
    """Return the counter-clockwise rotation matrix for a given angle.

    Acting on ``(dy, dx)`` offsets from the frame center, this matrix moves a
    point counter-clockwise (row 0 displayed at the top).

    Args:
        rotation_deg: Rotation angle in degrees. Positive = counter-clockwise.

    Returns:
        2x2 rotation matrix as a JAX array.
    """
    theta = jnp.deg2rad(rotation_deg)
    cos_theta = jnp.cos(theta)
    sin_theta = jnp.sin(theta)
    return jnp.array(
        [
            [cos_theta, -sin_theta],
            [sin_theta, cos_theta],
        ]
    )


def source_coordinates(shape: tuple[int, int], angle: float) -> jax.Array:
    """Where each output pixel of a frame rotated by ``angle`` samples its source.

    Args:
        shape: Frame shape (ny, nx).
        angle: Rotation angle in degrees. Positive = counter-clockwise.

    Returns:
        Array of shape (2, ny, nx) holding the source (y, x) of every pixel.
    """
    ny, nx = shape
    cy, cx = get_center(shape)
    y_grid, x_grid = jnp.mgrid[:ny, :nx]
    offsets = jnp.stack([y_grid - cy, x_grid - cx]).reshape(2, -1)
    # inverse mapping: rotate the output grid back by -angle
    src = (ccw_rotation_matrix(-angle) @ offsets).reshape(2, ny, nx)
    return src + jnp.array([cy, cx])[:, None, None]


@functools.partial(jax.jit, static_argnames=["order"])
def rotate_frame(
    frame: jax.Array,
    angle: float,
    fill: float = 0.0,
    order: int = 1,
) -> jax.Array:
    """Rotate a frame counter-clockwise about its center.

    Args:
        frame: 2D input frame.
        angle: Rotation angle in degrees. Positive = counter-clockwise.
        fill: Value for pixels whose source lies outside the frame.
        order: Interpolation order (0 = nearest, 1 = bilinear).

    Returns:
        Rotated frame (floating point). Values are those of ``frame`` if
        ``angle == 0``.
    """
    frame = jnp.asarray(frame)
    if not jnp.issubdtype(frame.dtype, jnp.inexact):
        frame = frame.astype(jnp.result_type(float))
    ny, nx = frame.shape

    src_y, src_x = source_coordinates(frame.shape, angle)
    inside = (src_y >= 0) & (src_y <= ny - 1) & (src_x >= 0) & (src_x <= nx - 1)
    rotated = map_coordinates(frame, [src_y, src_x], order=order, mode="nearest")
    rotated = jnp.where(inside, rotated, fill)

    return jnp.where(angle == 0, frame, rotated)


@functools.partial(jax.jit, static_argnames=["order"])
def _rotate_frames(frames, angles, fill, order):
    return jax.vmap(lambda frame, angle: rotate_frame(frame, angle, fill, order))(
        frames, angles
    )


def _check_cube_shape(cube) -> tuple[int, ...]:
    shape = jnp.shape(cube)
    if len(shape) != 3:
        raise ShapeMismatchError(
            f"Expected a cube of shape (n_frames, ny, nx), got shape {shape}"
        )
    return shape


def derotate(
    cube,
    angles,
    fill: float = 0.0,
    order: int = 1,
    max_workers: int | None = None,
    out: np.ndarray | None = None,
):
    """Rotate frame ``i`` of a cube counter-clockwise by ``angles[i]`` degrees.

    If the angles are parallactic angles, every frame of the result is
    aligned North up.

    Args:
        cube: Array of shape (n_frames, ny, nx).
        angles: Angles in degrees, one per frame.
        fill: Value for pixels that leave the field of view.
        order: Interpolation order (0 = nearest, 1 = bilinear).
        max_workers: If greater than 1, the time axis is split into chunks
            processed by a thread pool. Output frame order always matches
            input order.
        out: Optional writable numpy array to receive the result. Passing
            ``out=cube`` derotates in place; the caller must not read ``cube``
            from another thread during the call.

    Returns:
        The derotated cube (a JAX array, or ``out`` if given). If every angle
        is zero, ``cube`` itself is returned unchanged.

    Raises:
        ShapeMismatchError: If the cube is not 3D or ``len(angles)`` differs
            from the number of frames.
    """
    shape = _check_cube_shape(cube)
    angles = check_angles(shape[0], angles)
    if out is not None and out.shape != shape:
        raise ShapeMismatchError(
            f"Output shape {out.shape} does not match cube shape {shape}"
        )

    if not np.any(angles):
        if out is None or out is cube:
            return cube if out is None else out
        out[...] = np.asarray(cube)
        return out

    frames = jnp.asarray(cube)
    n_frames = shape[0]
    if max_workers is None or max_workers <= 1 or n_frames <= 1:
        result = _rotate_frames(frames, jnp.asarray(angles), fill, order)
    else:
        n_chunks = min(max_workers, n_frames)
        chunks = np.array_split(np.arange(n_frames), n_chunks)
        logger.debug("derotating %d frames in %d chunks", n_frames, n_chunks)

        def work(chunk):
            start, stop = chunk[0], chunk[-1] + 1
            return _rotate_frames(
                frames[start:stop], jnp.asarray(angles[start:stop]), fill, order
            )

        with ThreadPoolExecutor(max_workers=max_workers) as ex:
            result = jnp.concatenate(list(ex.map(work, chunks)), axis=0)

    if out is not None:
        out[...] = np.asarray(result)
        return out
    return result


def rotate(
    cube,
    angles,
    fill: float = 0.0,
    order: int = 1,
    max_workers: int | None = None,
    out: np.ndarray | None = None,
):
    """Rotate frame ``i`` clockwise by ``angles[i]`` degrees (inverse of `derotate`).

    ``rotate(derotate(cube, angles), angles)`` recovers ``cube`` at interior
    pixels, up to interpolation error.

    See `derotate` for the arguments.
    """
    shape = _check_cube_shape(cube)
    angles = check_angles(shape[0], angles)
    return derotate(
        cube, -angles, fill=fill, order=order, max_workers=max_workers, out=out
    )
