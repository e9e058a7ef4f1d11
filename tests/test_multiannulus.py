"""test_multiannulus.py - Tests for the multi-band annulus view.

Run with: pytest tests/test_multiannulus.py -v
"""

import numpy as np
import pytest

from coronastack.core.errors import (
    CountMismatchError,
    InvalidGeometryError,
    OutOfBoundsError,
    ShapeMismatchError,
)
from coronastack.core.geometry import band_mask, get_center
from coronastack.core.multiannulus import MultiAnnulusView


@pytest.fixture
def cube():
    return np.random.default_rng(1).normal(size=(4, 101, 101))


class TestConstruction:
    """Tests for contiguous rings."""

    def test_radii(self):
        """Width 5 rings between 10 and 30 are centered at 12.5 ... 27.5."""
        view = MultiAnnulusView(np.ones((10, 501, 501)), 5, inner=10, outer=30)
        np.testing.assert_allclose(view.radii, [12.5, 17.5, 22.5, 27.5])
        assert view.n_bands == 4

    def test_band_shapes(self, cube):
        """Every band flattens to (n_frames, band_pixels)."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        for i, (rows, _) in enumerate(view.indices):
            assert view.band(i).shape == (4, rows.size)

    def test_partition_covers_single_band(self, cube):
        """The union of contiguous rings equals the single band [inner, outer]."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        np.testing.assert_array_equal(view.mask, band_mask(cube.shape, 10, 30))
        covered = set()
        for rows, cols in view.indices:
            covered |= set(zip(rows.tolist(), cols.tolist()))
        assert len(covered) == int(view.mask.sum())

    def test_unbounded_covers_whole_frame(self, cube):
        """outer=inf rings reach every pixel, corners included."""
        view = MultiAnnulusView(cube, 5, inner=0, outer=np.inf)
        assert view.mask.all()
        np.testing.assert_array_equal(np.asarray(view), cube)

    def test_invalid_geometry(self, cube):
        """Bad bounds or width raise InvalidGeometryError."""
        with pytest.raises(InvalidGeometryError):
            MultiAnnulusView(cube, 5, inner=30, outer=10)
        with pytest.raises(InvalidGeometryError):
            MultiAnnulusView(cube, 0, inner=10, outer=30)
        with pytest.raises(InvalidGeometryError):
            MultiAnnulusView(cube, 50, inner=10, outer=30)

    def test_from_radii(self, cube):
        """Explicit radii give bands of the shared width."""
        view = MultiAnnulusView.from_radii(cube, [10, 20], 4)
        assert view.bounds == [(8.0, 12.0), (18.0, 22.0)]

    def test_from_radii_clamps_inner_edge(self, cube):
        """A band reaching below zero starts at the center."""
        view = MultiAnnulusView.from_radii(cube, [1], 4)
        assert view.bounds == [(0.0, 3.0)]
        cy, cx = get_center(cube.shape)
        assert view.mask[int(cy), int(cx)]

    def test_from_radii_invalid(self, cube):
        """Empty radii or a non-positive width are rejected."""
        with pytest.raises(InvalidGeometryError):
            MultiAnnulusView.from_radii(cube, [], 4)
        with pytest.raises(InvalidGeometryError):
            MultiAnnulusView.from_radii(cube, [10], 0)


class TestBands:
    """Tests for band access and lazy iteration."""

    def test_band_out_of_bounds(self, cube):
        """Band indices outside [0, n_bands) raise."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        with pytest.raises(OutOfBoundsError):
            view.band(4)
        with pytest.raises(OutOfBoundsError):
            view.band(-1)

    def test_bool_index_rejected(self, cube):
        """True and False are not band indices."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        with pytest.raises(OutOfBoundsError):
            view.band(True)
        with pytest.raises(OutOfBoundsError):
            view(False)
        with pytest.raises(OutOfBoundsError):
            view.inverse_band(True, view.band(1))
        with pytest.raises(OutOfBoundsError):
            view.copyto_band(np.True_, view.band(1))

    def test_call_is_band(self, cube):
        """Calling the view with an index returns that band."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        np.testing.assert_array_equal(view(2), view.band(2))

    def test_bands_lazy_and_restartable(self, cube):
        """bands() can be iterated more than once and yields band order."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        bands = view.bands()
        assert not isinstance(bands, list)
        assert len(bands) == 4
        first = list(bands)
        second = list(bands)
        assert len(first) == len(second) == 4
        for i, (a, b) in enumerate(zip(first, second)):
            np.testing.assert_array_equal(a, b)
            np.testing.assert_array_equal(a, view.band(i))


class TestElementAccess:
    """Tests for union-semantics reads and writes."""

    def test_overlapping_bands_union(self, cube):
        """A pixel in any band is inside the view."""
        view = MultiAnnulusView.from_radii(cube, [10, 12], 6, fill=np.nan)
        cy, cx = (int(c) for c in get_center(cube.shape))
        # band 0 only, overlap, band 1 only, outside both
        assert view[0, cy, cx + 8] == cube[0, cy, cx + 8]
        assert view[0, cy, cx + 11] == cube[0, cy, cx + 11]
        assert view[0, cy, cx + 14] == cube[0, cy, cx + 14]
        assert np.isnan(view[0, cy, cx + 20])

    def test_write_in_overlap(self, cube):
        """A write to a pixel shared by two bands lands in the parent once."""
        view = MultiAnnulusView.from_radii(cube, [10, 12], 6)
        cy, cx = (int(c) for c in get_center(cube.shape))
        view[1, cy, cx + 11] = 42.0
        assert cube[1, cy, cx + 11] == 42.0
        view[1, cy, cx + 30] = 42.0
        assert cube[1, cy, cx + 30] != 42.0

    def test_out_of_bounds(self, cube):
        """Element indices are bounds checked."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        with pytest.raises(OutOfBoundsError):
            view[-1, 2, 3]

    def test_copy_is_independent(self, cube):
        """A copied view does not write into the original parent."""
        before = cube.copy()
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        other = view.copy()
        other.copyto([np.zeros_like(X) for X in view.bands()])
        np.testing.assert_array_equal(cube, before)
        assert other.indices is view.indices


class TestInverse:
    """Tests for scattering band matrices back into cubes."""

    def test_inverse_roundtrip(self, cube):
        """inverse(bands()) reproduces the union and fills elsewhere."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30, fill=np.nan)
        out = view.inverse(view.bands())
        np.testing.assert_array_equal(out, np.asarray(view))
        assert np.all(np.isnan(out[:, ~view.mask]))

    def test_inverse_count_mismatch(self, cube):
        """One matrix is required per band."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        with pytest.raises(CountMismatchError):
            view.inverse([view.band(0)])
        with pytest.raises(CountMismatchError):
            view.copyto([view.band(0)])

    def test_inverse_shape_mismatch(self, cube):
        """Each matrix must match its band's shape."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        with pytest.raises(ShapeMismatchError):
            view.inverse_band(1, view.band(0))

    def test_inverse_band(self, cube):
        """A single band is scattered into a fresh fill cube."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30, fill=0.0)
        out = view.inverse_band(0, -view.band(0))
        rows, cols = view.indices[0]
        np.testing.assert_array_equal(out[:, rows, cols], -cube[:, rows, cols])
        only_outer = view.mask & ~band_mask(cube.shape, *view.bounds[0])
        assert np.all(out[:, only_outer] == 0)

    def test_copyto_in_place(self, cube):
        """copyto writes every band into the parent."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        assert view.copyto([np.full_like(X, 7.0) for X in view.bands()]) is view
        assert np.all(cube[:, view.mask] == 7.0)
        assert not np.any(cube[:, ~view.mask] == 7.0)

    def test_copyto_validates_before_writing(self, cube):
        """A bad matrix leaves the parent untouched."""
        before = cube.copy()
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        matrices = [np.zeros_like(X) for X in view.bands()]
        matrices[-1] = matrices[-1][:, :-1]
        with pytest.raises(ShapeMismatchError):
            view.copyto(matrices)
        np.testing.assert_array_equal(cube, before)

    def test_copyto_band(self, cube):
        """copyto_band writes one band in place."""
        view = MultiAnnulusView(cube, 5, inner=10, outer=30)
        view.copyto_band(2, np.ones_like(view.band(2)))
        assert np.all(view.band(2) == 1.0)
