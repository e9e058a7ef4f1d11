"""test_cube.py - Tests for cube matrix helpers and angle normalization.

Run with: pytest tests/test_cube.py -v
"""

import numpy as np
import pytest

from coronastack.core.cube import expand, flatten, normalize_par_angles
from coronastack.core.errors import ShapeMismatchError


class TestFlattenExpand:
    """Tests for unrolling cubes into matrices and back."""

    def test_flatten_shape(self):
        """Each frame becomes one row."""
        np.testing.assert_array_equal(flatten(np.ones((3, 4, 4))), np.ones((3, 16)))

    def test_flatten_rejects_frames(self):
        """A 2D frame is not a cube."""
        with pytest.raises(ShapeMismatchError):
            flatten(np.ones((3, 4)))

    def test_expand_shape(self):
        """Rows are folded back into square frames."""
        np.testing.assert_array_equal(expand(np.ones((3, 16))), np.ones((3, 4, 4)))

    def test_expand_non_square_raises(self):
        """Pixel counts that are not perfect squares cannot be expanded."""
        with pytest.raises(ShapeMismatchError, match="square"):
            expand(np.ones((3, 15)))

    def test_roundtrip(self):
        """expand(flatten(X)) reproduces X exactly."""
        X = np.random.default_rng(0).random((10, 32, 32))
        np.testing.assert_array_equal(expand(flatten(X)), X)


class TestNormalizeParAngles:
    """Tests for parallactic angle normalization."""

    def test_negative_angles_wrapped(self):
        """Negative angles are made positive."""
        wrapped = normalize_par_angles([-30, -20, -10])
        np.testing.assert_allclose(wrapped, [330, 340, 350])

    def test_crossing_zero_unwrapped(self):
        """A sequence crossing 0 degrees stays monotonic."""
        np.testing.assert_allclose(normalize_par_angles([-10, 50, 51]), [350, 410, 411])

    def test_positive_angles_unchanged(self):
        """Already-positive monotonic angles are untouched."""
        np.testing.assert_allclose(normalize_par_angles([20, 40, 60]), [20, 40, 60])

    def test_input_not_modified(self):
        """The input array is copied."""
        x = np.array([-10.0, 50.0, 51.0])
        normalize_par_angles(x)
        np.testing.assert_array_equal(x, [-10.0, 50.0, 51.0])
