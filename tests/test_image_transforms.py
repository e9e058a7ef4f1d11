"""test_image_transforms.py - Tests for frame rotation.

Run with: pytest tests/test_image_transforms.py -v
"""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from coronastack.core.errors import ShapeMismatchError
from coronastack.core.geometry import band_mask
from coronastack.core.image_transforms import (
    ccw_rotation_matrix,
    derotate,
    rotate,
    rotate_frame,
    source_coordinates,
)


def gaussian_cube(n_frames, size, y0, x0, sigma=4.0):
    """Cube of identical frames holding one Gaussian blob."""
    y, x = np.mgrid[:size, :size]
    frame = np.exp(-((y - y0) ** 2 + (x - x0) ** 2) / (2 * sigma**2))
    return np.repeat(frame[None], n_frames, axis=0)


class TestRotationMatrix:
    """Tests for the (dy, dx) rotation matrix."""

    def test_quarter_turn_moves_up_to_left(self):
        """+90 degrees takes an offset pointing up (-y) to one pointing left (-x)."""
        moved = ccw_rotation_matrix(90.0) @ jnp.array([-1.0, 0.0])
        assert jnp.allclose(moved, jnp.array([0.0, -1.0]), atol=1e-6)

    def test_opposite_angles_cancel(self):
        """R(a) @ R(-a) is the identity."""
        product = ccw_rotation_matrix(37.5) @ ccw_rotation_matrix(-37.5)
        assert jnp.allclose(product, jnp.eye(2), atol=1e-6)


class TestSourceCoordinates:
    """Tests for the inverse mapping of the output grid."""

    def test_zero_angle_is_identity_grid(self):
        """Without rotation every pixel samples itself."""
        src = source_coordinates((5, 7), 0.0)
        y, x = jnp.mgrid[:5, :7]
        assert jnp.allclose(src[0], y, atol=1e-6)
        assert jnp.allclose(src[1], x, atol=1e-6)

    def test_center_is_fixed(self):
        """The frame center maps to itself for any angle."""
        src = source_coordinates((11, 11), 23.0)
        assert jnp.allclose(src[:, 5, 5], jnp.array([5.0, 5.0]), atol=1e-5)


class TestRotateFrame:
    """Tests for single-frame rotation."""

    def test_quarter_turn_is_counter_clockwise(self):
        """The top-center pixel of a 3x3 frame moves to the left-center at +90."""
        frame = jnp.zeros((3, 3)).at[0, 1].set(1.0)
        out = rotate_frame(frame, 90.0)
        assert out[1, 0] > 0.99
        others = jnp.ones((3, 3), dtype=bool).at[1, 0].set(False)
        assert jnp.allclose(out[others], 0.0, atol=1e-6)

    def test_point_source_direction(self):
        """A source above the center ends up left of the center."""
        frame = jnp.zeros((31, 31)).at[5, 15].set(1.0)
        out = rotate_frame(frame, 90.0)
        peak = jnp.unravel_index(jnp.argmax(out), out.shape)
        assert (int(peak[0]), int(peak[1])) == (15, 5)

    def test_zero_angle_is_noop(self):
        """A zero angle returns the frame values untouched, corners included."""
        frame = jax.random.normal(jax.random.PRNGKey(2), (16, 16))
        out = rotate_frame(frame, 0.0, fill=jnp.nan)
        assert jnp.array_equal(out, frame)

    def test_small_rotation_keeps_in_frame_pixels(self):
        """Only pixels whose source leaves the frame are filled."""
        frame = jnp.ones((11, 11))
        out = rotate_frame(frame, 1.0, fill=jnp.nan)
        # (1, 1) samples near (0.93, 1.07), still inside the frame
        assert jnp.isclose(out[1, 1], 1.0, atol=1e-5)
        assert jnp.allclose(out[1:-1, 1:-1], 1.0, atol=1e-5)
        # (0, 0) samples above row 0
        assert jnp.isnan(out[0, 0])

    def test_fill_matches_source_domain(self):
        """A pixel is filled exactly when its source is outside the frame."""
        frame = jnp.ones((21, 21))
        out = rotate_frame(frame, 45.0, fill=jnp.nan)
        src_y, src_x = source_coordinates((21, 21), 45.0)
        inside = (src_y >= 0) & (src_y <= 20) & (src_x >= 0) & (src_x <= 20)
        assert jnp.array_equal(jnp.isnan(out), ~inside)
        assert jnp.allclose(out[inside], 1.0, atol=1e-5)

    def test_integer_frame_promoted(self):
        """Integer frames are rotated in floating point."""
        frame = jnp.ones((9, 9), dtype=jnp.int32)
        out = rotate_frame(frame, 30.0)
        assert jnp.issubdtype(out.dtype, jnp.floating)

    def test_nearest_neighbour(self):
        """order=0 only ever returns source values or fill."""
        frame = jax.random.uniform(jax.random.PRNGKey(3), (15, 15))
        out = rotate_frame(frame, 33.0, fill=-1.0, order=0)
        values = set(np.asarray(frame).ravel().tolist()) | {-1.0}
        assert set(np.asarray(out).ravel().tolist()) <= values


class TestDerotate:
    """Tests for cube derotation."""

    def test_zero_angles_return_input(self):
        """All-zero angles return the cube itself."""
        X = np.random.default_rng(0).random((4, 16, 16))
        assert derotate(X, np.zeros(4)) is X
        assert rotate(X, np.zeros(4)) is X

    def test_zero_angle_frame_untouched(self):
        """Frames with a zero angle are not resampled."""
        X = np.random.default_rng(1).random((2, 16, 16)).astype(np.float32)
        out = derotate(X, [0.0, 45.0])
        assert jnp.array_equal(out[0], X[0])

    def test_small_angle_loses_only_the_border(self):
        """A 1 degree derotation keeps every interior pixel."""
        X = np.ones((1, 11, 11))
        out = derotate(X, [1.0], fill=np.nan)
        assert not jnp.any(jnp.isnan(out[0, 1:-1, 1:-1]))

    def test_angle_count_mismatch(self):
        """There must be one angle per frame."""
        with pytest.raises(ShapeMismatchError):
            derotate(np.ones((3, 8, 8)), [10.0, 20.0])

    def test_frame_rejected(self):
        """A single frame is not a cube."""
        with pytest.raises(ShapeMismatchError):
            derotate(np.ones((8, 8)), [10.0])

    def test_rotate_inverts_derotate(self):
        """rotate(derotate(X)) recovers X at interior pixels."""
        X = gaussian_cube(2, 48, 19.5, 25.5)
        angles = np.array([30.0, 75.0])
        back = rotate(derotate(X, angles), angles)
        inner = band_mask((48, 48), 0, 15)
        assert jnp.allclose(back[:, inner], X[:, inner], atol=0.05)

    def test_threaded_matches_vectorized(self):
        """Chunked derotation gives the same frames in the same order."""
        X = np.random.default_rng(2).random((7, 24, 24)).astype(np.float32)
        angles = np.linspace(5, 80, 7)
        single = derotate(X, angles)
        threaded = derotate(X, angles, max_workers=3)
        assert jnp.allclose(single, threaded, atol=1e-6)

    def test_out_in_place(self):
        """Passing out=cube derotates in place."""
        X = np.random.default_rng(3).random((3, 16, 16)).astype(np.float32)
        angles = [10.0, 20.0, 30.0]
        expected = derotate(X.copy(), angles)
        buf = X.copy()
        result = derotate(buf, angles, out=buf)
        assert result is buf
        assert jnp.allclose(buf, expected, atol=1e-6)

    def test_out_shape_mismatch(self):
        """The output buffer must match the cube."""
        with pytest.raises(ShapeMismatchError):
            derotate(np.ones((2, 8, 8)), [1.0, 2.0], out=np.empty((2, 8, 9)))
