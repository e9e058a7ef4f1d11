"""Non-copying annular view over an image cube.

An `AnnulusView` borrows a caller-owned cube and restricts it to one radial
band. Reads outside the band return the fill value and writes outside the
band are ignored; everything inside the band passes straight through to the
parent array. The band's spatial index set is computed once at construction
so that flattening and scattering back (`inverse`) use the same ordering.

Example::

    view = AnnulusView(cube, inner=5, outer=20)
    X = view.flatten()                  # (n_frames, n_pixels) copy
    residuals = X - np.median(X, axis=0)
    out = view.inverse(residuals)       # cube-shaped, fill outside the band
"""

import logging

import numpy as np

from coronastack.core.cube import as_cube, check_angles
from coronastack.core.errors import (
    InvalidGeometryError,
    OutOfBoundsError,
    ShapeMismatchError,
)
from coronastack.core.geometry import (
    band_indices,
    check_band,
    clamp_pa_threshold,
    get_center,
    pa_threshold,
    prune_frames,
)

logger = logging.getLogger(__name__)


def check_index(shape: tuple[int, ...], idx) -> tuple[int, int, int]:
    """Validate a ``(t, row, col)`` index against a cube shape.

    Negative indices are out of bounds; nothing is wrapped or clamped.
    """
    if not isinstance(idx, tuple) or len(idx) != 3:
        raise TypeError(f"Views are indexed with (t, row, col), got {idx!r}")
    for i, size in zip(idx, shape):
        if not isinstance(i, (int, np.integer)) or isinstance(i, bool):
            raise TypeError(f"View indices must be integers, got {idx!r}")
        if not 0 <= i < size:
            raise OutOfBoundsError(f"Index {idx} is out of bounds for shape {shape}")
    return tuple(int(i) for i in idx)


def fill_dtype(dtype: np.dtype, fill) -> np.dtype:
    """Smallest dtype holding both the cube values and the fill value."""
    return np.result_type(dtype, fill)


class AnnulusView:
    """A masked view of a cube restricted to one radial band.

    The view never copies the parent: `parent` is the caller's array and
    writes through `view[t, row, col] = value` and `copyto` mutate it. If the
    parent is not a writable numpy array (e.g. a JAX array) the view is
    read-only.

    Attributes:
        parent: The borrowed cube, shape (n_frames, ny, nx).
        rmin: Inner radius of the band (inclusive).
        rmax: Outer radius of the band (inclusive).
        fill: Value reported for pixels outside the band.
        times: Indices of the frames included in `flatten` (all frames
            unless pruned by angle).
        rows: Row indices of the band pixels (row-major order).
        cols: Column indices of the band pixels.
    """

    def __init__(
        self,
        cube,
        inner: float = 0.0,
        outer: float | None = None,
        fill=0.0,
        *,
        angles=None,
        fwhm: float | None = None,
        threshold: float = 1.0,
        radius: float | None = None,
    ):
        """Cut out the band ``[inner, outer]`` of a cube.

        Args:
            cube: Array of shape (n_frames, ny, nx). Numpy input is not copied.
            inner: Inner radius in pixels.
            outer: Outer radius in pixels. Defaults to ``(nx + 1) / 2``; may be
                ``inf`` to keep every pixel beyond ``inner``.
            fill: Value returned for pixels outside the band.
            angles: Optional parallactic angles (degrees), one per frame.
            fwhm: If given together with ``angles``, frames are pruned so that
                consecutive kept frames differ by at least
                ``pa_threshold(fwhm, radius, threshold)`` degrees.
            threshold: Rotation tolerance in units of FWHM for pruning.
            radius: Representative radius for pruning. Defaults to the middle
                of the band.

        Raises:
            InvalidGeometryError: If ``not 0 <= inner < outer``.
            ShapeMismatchError: If ``len(angles)`` differs from the frame count.
        """
        parent = as_cube(cube)
        n_frames, _, nx = parent.shape
        if outer is None:
            outer = (nx + 1) / 2
        check_band(inner, outer)

        times = np.arange(n_frames)
        if angles is not None:
            angles = check_angles(n_frames, angles)
            if fwhm is not None:
                if radius is None:
                    if not np.isfinite(outer):
                        raise InvalidGeometryError(
                            "A radius is required to prune frames of an "
                            "unbounded annulus"
                        )
                    radius = (inner + outer) / 2
                pa_thresh = clamp_pa_threshold(
                    pa_threshold(fwhm, radius, threshold), angles
                )
                times = prune_frames(angles, pa_thresh)

        rows, cols = band_indices(parent.shape, inner, outer)

        self.parent = parent
        self.rmin = float(inner)
        self.rmax = float(outer)
        self.fill = fill
        self.times = times
        self.rows = rows
        self.cols = cols
        self._angles = angles
        self._mask = np.zeros(parent.shape[1:], dtype=bool)
        self._mask[rows, cols] = True

    # ------------------------------------------------------------------
    # Array-like protocol
    # ------------------------------------------------------------------

    @property
    def shape(self) -> tuple[int, int, int]:
        return self.parent.shape

    @property
    def ndim(self) -> int:
        return 3

    @property
    def mask(self) -> np.ndarray:
        """2D boolean mask of the band."""
        return self._mask

    @property
    def center(self) -> tuple[float, float]:
        return get_center(self.parent.shape)

    @property
    def n_pixels(self) -> int:
        return self.rows.size

    @property
    def angles(self) -> np.ndarray | None:
        """Angles of the kept frames, or None if the view has no angles."""
        if self._angles is None:
            return None
        return self._angles[self.times]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(shape={self.shape}, rmin={self.rmin}, "
            f"rmax={self.rmax}, n_frames={self.times.size}, n_pixels={self.n_pixels})"
        )

    def __array__(self, dtype=None, copy=None):
        out = np.where(self._mask[None], self.parent, self.fill)
        return out if dtype is None else out.astype(dtype)

    def __getitem__(self, idx):
        t, row, col = check_index(self.parent.shape, idx)
        if self._mask[row, col]:
            return self.parent[t, row, col]
        return self.fill

    def __setitem__(self, idx, value):
        t, row, col = check_index(self.parent.shape, idx)
        # masked write: pixels outside the band are left untouched
        if self._mask[row, col]:
            self.parent[t, row, col] = value

    def copy(self) -> "AnnulusView":
        """Deep-copy the parent cube; the index set is shared."""
        new = object.__new__(type(self))
        new.__dict__.update(self.__dict__)
        new.parent = self.parent.copy()
        return new

    # ------------------------------------------------------------------
    # Flatten / inverse
    # ------------------------------------------------------------------

    def flatten(self) -> np.ndarray:
        """Return the band pixels as a dense ``(n_kept_frames, n_pixels)`` matrix.

        Column ``j`` holds pixel ``(rows[j], cols[j])`` and row ``i`` holds
        frame ``times[i]``. The matrix is a copy, so it can be modified
        freely.

        Example:
            >>> view = AnnulusView(np.ones((10, 101, 101)), inner=5, outer=20)
            >>> view.flatten().shape
            (10, 1188)
        """
        return self.parent[self.times[:, None], self.rows, self.cols]

    __call__ = flatten

    def _check_matrix(self, matrix) -> np.ndarray:
        matrix = np.asarray(matrix)
        expected = (self.times.size, self.n_pixels)
        if matrix.shape != expected:
            raise ShapeMismatchError(
                f"Matrix of shape {matrix.shape} does not match "
                f"annulus shape {expected}"
            )
        return matrix

    def inverse(self, matrix) -> np.ndarray:
        """Scatter a flattened matrix into a new cube filled with `fill`.

        Args:
            matrix: Array of shape ``(n_kept_frames, n_pixels)``, e.g. the
                (processed) output of `flatten`.

        Returns:
            New array shaped like `parent`.

        Raises:
            ShapeMismatchError: If ``matrix`` has the wrong shape.
        """
        matrix = self._check_matrix(matrix)
        dtype = fill_dtype(self.parent.dtype, self.fill)
        out = np.full(self.parent.shape, self.fill, dtype=dtype)
        out[self.times[:, None], self.rows, self.cols] = matrix
        return out

    def copyto(self, matrix) -> "AnnulusView":
        """Scatter a flattened matrix into the parent cube in place.

        Returns:
            The view itself.

        Raises:
            ShapeMismatchError: If ``matrix`` has the wrong shape.
        """
        matrix = self._check_matrix(matrix)
        self.parent[self.times[:, None], self.rows, self.cols] = matrix
        return self
