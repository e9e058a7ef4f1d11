"""Forward modeling tools for injecting synthetic sources into cubes.

Positions are given as a tagged location, either `Cartesian` pixel
coordinates or `Polar` coordinates about the frame center. The tag is
resolved once by `to_cartesian`; everything downstream works on a plain
``(y, x)`` pair.

`inject_companion` follows the rotation convention of
`coronastack.core.image_transforms`: the field of frame ``i`` is rotated by
``-angles[i]``, so ``derotate(inject_companion(cube, psf, angles, loc), angles)``
brings every copy of the companion back to ``loc``.
"""

import functools
from typing import NamedTuple

import jax
import jax.numpy as jnp
from jax.scipy.ndimage import map_coordinates

from coronastack.core.cube import check_angles
from coronastack.core.errors import ShapeMismatchError
from coronastack.core.geometry import get_center


class Cartesian(NamedTuple):
    """Absolute pixel position (row ``y``, column ``x``)."""

    y: float
    x: float


class Polar(NamedTuple):
    """Position relative to the frame center.

    ``r`` is the separation in pixels and ``theta`` the angle in degrees,
    measured counter-clockwise from the +x (column) axis with row 0 displayed
    at the top.
    """

    r: float
    theta: float


Location = Cartesian | Polar


def to_cartesian(location: Location, shape: tuple[int, ...]) -> tuple[float, float]:
    """Resolve a location into absolute ``(y, x)`` pixel coordinates.

    Args:
        location: A `Cartesian` or `Polar` position.
        shape: Frame (or cube) shape; sets the center for polar positions.

    Returns:
        Tuple (y, x).
    """
    if isinstance(location, Cartesian):
        return float(location.y), float(location.x)
    if isinstance(location, Polar):
        cy, cx = get_center(shape)
        theta = jnp.deg2rad(location.theta)
        y = cy - location.r * jnp.sin(theta)
        x = cx + location.r * jnp.cos(theta)
        return float(y), float(x)
    raise TypeError(f"Expected a Cartesian or Polar location, got {location!r}")


@functools.partial(jax.jit, static_argnames=["shape", "order"])
def _place_image(
    image: jnp.ndarray,
    pos_y: float,
    pos_x: float,
    shape: tuple[int, int],
    order: int = 1,
) -> jnp.ndarray:
    """Render ``image`` on a zero canvas of ``shape`` centered at (pos_y, pos_x)."""
    ny, nx = shape
    icy, icx = get_center(image.shape)
    y, x = jnp.mgrid[:ny, :nx]
    coords = [y - pos_y + icy, x - pos_x + icx]
    return map_coordinates(image, coords, order=order, mode="constant", cval=0.0)


def inject_image(
    frame: jnp.ndarray,
    image: jnp.ndarray,
    location: Location,
    amplitude: float = 1.0,
    order: int = 1,
) -> jnp.ndarray:
    """Add ``amplitude * image`` to a frame, centered at ``location``.

    The image (e.g. a PSF) should be centered in its own array, preferably
    odd-sized. It is interpolated onto the frame grid with sub-pixel
    precision and zero padding.

    Args:
        frame: 2D frame, shape (ny, nx).
        image: 2D image to inject, any shape.
        location: Where to put the image center.
        amplitude: Flux scaling factor.
        order: Interpolation order (0 = nearest, 1 = bilinear).

    Returns:
        New frame with the injected image.
    """
    frame = jnp.asarray(frame)
    image = jnp.asarray(image, dtype=jnp.result_type(float))
    pos_y, pos_x = to_cartesian(location, frame.shape)
    return frame + amplitude * _place_image(image, pos_y, pos_x, frame.shape, order)


def companion_positions(
    location: Location,
    angles,
    shape: tuple[int, ...],
) -> jnp.ndarray:
    """Per-frame ``(y, x)`` of a source at ``location`` in a field rotated by
    ``-angles``.

    Args:
        location: Position of the source in the derotated (sky-aligned) frame.
        angles: Parallactic angles in degrees, one per frame.
        shape: Frame (or cube) shape.

    Returns:
        Array of shape (n_frames, 2).
    """
    cy, cx = get_center(shape)
    pos_y, pos_x = to_cartesian(location, shape)
    dy, dx = pos_y - cy, pos_x - cx

    # ccw_rotation_matrix(-angle) @ (dy, dx)
    theta = -jnp.deg2rad(jnp.asarray(angles, dtype=jnp.result_type(float)))
    cos_t, sin_t = jnp.cos(theta), jnp.sin(theta)
    ys = cy + cos_t * dy - sin_t * dx
    xs = cx + sin_t * dy + cos_t * dx
    return jnp.stack([ys, xs], axis=1)


def inject_companion(
    cube: jnp.ndarray,
    image: jnp.ndarray,
    angles,
    location: Location,
    amplitude: float = 1.0,
    order: int = 1,
) -> jnp.ndarray:
    """Inject a source that co-rotates with the sky into every frame of a cube.

    Useful for fake companion injection: ``location`` is the position in the
    derotated frame, and frame ``i`` receives the image at that position
    rotated by ``-angles[i]`` about the frame center.

    Args:
        cube: Array of shape (n_frames, ny, nx).
        image: 2D image to inject (e.g. a PSF), centered in its array.
        angles: Parallactic angles in degrees, one per frame.
        location: Position of the source in the derotated frame.
        amplitude: Flux scaling factor.
        order: Interpolation order (0 = nearest, 1 = bilinear).

    Returns:
        New cube with the injected source.

    Raises:
        ShapeMismatchError: If ``len(angles)`` differs from the number of frames.
    """
    cube = jnp.asarray(cube)
    if cube.ndim != 3:
        raise ShapeMismatchError(
            f"Expected a cube of shape (n_frames, ny, nx), got shape {cube.shape}"
        )
    angles = check_angles(cube.shape[0], angles)
    image = jnp.asarray(image, dtype=jnp.result_type(float))
    shape = cube.shape[1:]

    positions = companion_positions(location, angles, shape)
    signal = jax.vmap(lambda pos: _place_image(image, pos[0], pos[1], shape, order))(
        positions
    )
    return cube + amplitude * signal
