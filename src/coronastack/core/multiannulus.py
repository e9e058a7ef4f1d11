"""Non-copying view over several radial bands of an image cube.

`MultiAnnulusView` is the multi-band sibling of `AnnulusView`: each band
owns its own spatial index set, so bands can be flattened, processed and
scattered back one at a time. Element access uses union semantics: a pixel
is inside the view if *any* band contains it, which matters only when
caller-supplied radii produce overlapping bands.
"""

import logging

import numpy as np

from coronastack.core.annulus import check_index, fill_dtype
from coronastack.core.cube import as_cube
from coronastack.core.errors import (
    CountMismatchError,
    InvalidGeometryError,
    OutOfBoundsError,
    ShapeMismatchError,
)
from coronastack.core.geometry import annuli_radii, band_indices, check_band

logger = logging.getLogger(__name__)


class BandIterable:
    """Lazy, restartable iterable over the flattened bands of a view.

    Each iteration flattens bands on demand, so only one band's matrix needs
    to be alive at a time.
    """

    def __init__(self, view: "MultiAnnulusView"):
        self._view = view

    def __iter__(self):
        for i in range(self._view.n_bands):
            yield self._view.band(i)

    def __len__(self) -> int:
        return self._view.n_bands


class MultiAnnulusView:
    """A masked view of a cube restricted to a list of radial bands.

    Attributes:
        parent: The borrowed cube, shape (n_frames, ny, nx).
        radii: Band center radii.
        width: Width shared by all bands.
        fill: Value reported for pixels outside every band.
        indices: One ``(rows, cols)`` pair per band, row-major ordered.
    """

    def __init__(
        self,
        cube,
        width: float,
        inner: float = 0.0,
        outer: float | None = None,
        fill=0.0,
    ):
        """Split ``[inner, outer]`` into contiguous rings of ``width``.

        Bands are centered at ``inner + width/2, inner + 3*width/2, ...`` up
        to ``outer - width/2``. An infinite ``outer`` extends the rings until
        every corner of the frame is covered.

        Args:
            cube: Array of shape (n_frames, ny, nx). Numpy input is not copied.
            width: Ring width in pixels (e.g. the PSF FWHM).
            inner: Inner radius of the first ring.
            outer: Outer radius of the last ring. Defaults to ``(nx + 1) / 2``.
            fill: Value returned for pixels outside every band.

        Raises:
            InvalidGeometryError: If the bounds or width are invalid, or no ring fits.

        Example:
            >>> view = MultiAnnulusView(np.ones((10, 501, 501)), 5, inner=10, outer=30)
            >>> view.radii
            array([12.5, 17.5, 22.5, 27.5])
        """
        parent = as_cube(cube)
        radii = annuli_radii(parent.shape, width, inner, outer)
        self._setup(parent, radii, width, fill)

    @classmethod
    def from_radii(cls, cube, radii, width: float, fill=0.0) -> "MultiAnnulusView":
        """Build bands of a common ``width`` centered on explicit ``radii``.

        A band whose inner edge would be negative starts at 0 instead.

        Args:
            cube: Array of shape (n_frames, ny, nx). Numpy input is not copied.
            radii: Band center radii in pixels.
            width: Band width in pixels.
            fill: Value returned for pixels outside every band.

        Raises:
            InvalidGeometryError: If ``radii`` is empty or a band is invalid.
        """
        parent = as_cube(cube)
        if not width > 0:
            raise InvalidGeometryError(f"Annulus width must be positive, got {width}")
        radii = np.asarray(radii, dtype=float).reshape(-1)
        if radii.size == 0:
            raise InvalidGeometryError("At least one annulus radius is required")
        view = object.__new__(cls)
        view._setup(parent, radii, width, fill)
        return view

    def _setup(self, parent: np.ndarray, radii: np.ndarray, width: float, fill):
        bounds = []
        for r in radii:
            rmin = max(r - width / 2, 0.0)
            rmax = r + width / 2
            check_band(rmin, rmax)
            bounds.append((rmin, rmax))

        self.parent = parent
        self.radii = radii
        self.width = float(width)
        self.fill = fill
        self.bounds = bounds
        self.indices = [band_indices(parent.shape, rmin, rmax) for rmin, rmax in bounds]
        self.times = np.arange(parent.shape[0])

        self._mask = np.zeros(parent.shape[1:], dtype=bool)
        for rows, cols in self.indices:
            self._mask[rows, cols] = True
        logger.debug(
            "%d annuli of width %s on %s cube", len(bounds), width, parent.shape
        )

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
    def n_bands(self) -> int:
        return len(self.indices)

    @property
    def mask(self) -> np.ndarray:
        """2D boolean mask of the union of all bands."""
        return self._mask

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(shape={self.shape}, n_bands={self.n_bands}, "
            f"width={self.width})"
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
        if self._mask[row, col]:
            self.parent[t, row, col] = value

    def copy(self) -> "MultiAnnulusView":
        """Deep-copy the parent cube; the index sets are shared."""
        new = object.__new__(type(self))
        new.__dict__.update(self.__dict__)
        new.parent = self.parent.copy()
        return new

    # ------------------------------------------------------------------
    # Per-band flatten / inverse
    # ------------------------------------------------------------------

    def _band_indices(self, index: int) -> tuple[np.ndarray, np.ndarray]:
        valid = isinstance(index, (int, np.integer)) and not isinstance(index, bool)
        if not valid or not 0 <= index < self.n_bands:
            raise OutOfBoundsError(
                f"Annulus index {index} is out of bounds for {self.n_bands} annuli"
            )
        return self.indices[index]

    def band(self, index: int) -> np.ndarray:
        """Flatten band ``index`` into a ``(n_frames, n_pixels)`` matrix (a copy).

        Raises:
            OutOfBoundsError: If ``index`` is not a valid band index.
        """
        rows, cols = self._band_indices(index)
        return self.parent[:, rows, cols]

    __call__ = band

    def bands(self) -> BandIterable:
        """Iterate lazily over every band's flattened matrix, in band order."""
        return BandIterable(self)

    def _check_matrix(self, index: int, matrix) -> np.ndarray:
        rows, _ = self.indices[index]
        matrix = np.asarray(matrix)
        expected = (self.parent.shape[0], rows.size)
        if matrix.shape != expected:
            raise ShapeMismatchError(
                f"Matrix of shape {matrix.shape} does not match annulus {index} "
                f"shape {expected}"
            )
        return matrix

    def _scatter(self, out: np.ndarray, index: int, matrix) -> None:
        rows, cols = self._band_indices(index)
        out[:, rows, cols] = self._check_matrix(index, matrix)

    def _check_count(self, matrices) -> list:
        matrices = list(matrices)
        if len(matrices) != self.n_bands:
            raise CountMismatchError(
                f"Got {len(matrices)} matrices for {self.n_bands} annuli"
            )
        return matrices

    def _empty(self) -> np.ndarray:
        return np.full(
            self.parent.shape, self.fill, dtype=fill_dtype(self.parent.dtype, self.fill)
        )

    def inverse(self, matrices) -> np.ndarray:
        """Scatter one matrix per band into a new cube filled with `fill`.

        Args:
            matrices: Sequence of ``n_bands`` matrices, e.g. processed outputs
                of `bands`.

        Raises:
            CountMismatchError: If the number of matrices is not ``n_bands``.
            ShapeMismatchError: If any matrix has the wrong shape.
        """
        matrices = self._check_count(matrices)
        out = self._empty()
        for i, matrix in enumerate(matrices):
            self._scatter(out, i, matrix)
        return out

    def inverse_band(self, index: int, matrix) -> np.ndarray:
        """Scatter a single band's matrix into a new cube filled with `fill`."""
        out = self._empty()
        self._scatter(out, index, matrix)
        return out

    def copyto(self, matrices) -> "MultiAnnulusView":
        """Scatter one matrix per band into the parent cube in place."""
        matrices = self._check_count(matrices)
        # validate every band before touching the parent
        for i, matrix in enumerate(matrices):
            self._check_matrix(i, matrix)
        for i, matrix in enumerate(matrices):
            self._scatter(self.parent, i, matrix)
        return self

    def copyto_band(self, index: int, matrix) -> "MultiAnnulusView":
        """Scatter a single band's matrix into the parent cube in place."""
        self._scatter(self.parent, index, matrix)
        return self
