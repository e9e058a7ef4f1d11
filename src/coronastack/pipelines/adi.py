"""Angular differential imaging (ADI) pipelines.

Provides high-level workflows built on the annulus views:

- median_subtract: classic ADI, subtracting the per-pixel temporal median
  inside one annulus
- annular_pca: KLIP/PCA PSF subtraction band by band over a
  MultiAnnulusView

Both flatten the view, model the stellar PSF on the dense matrix, scatter
the residuals back with ``inverse`` and derotate-and-combine the result.
"""

import logging
from collections.abc import Callable

import jax
import jax.numpy as jnp
import numpy as np

from coronastack.core.annulus import AnnulusView
from coronastack.core.collapse import collapse
from coronastack.core.multiannulus import MultiAnnulusView
from coronastack.core.pca import get_pca_basis, pca_subtract

logger = logging.getLogger(__name__)


def median_subtract(
    cube,
    angles,
    inner: float = 0.0,
    outer: float | None = None,
    fwhm: float | None = None,
    threshold: float = 1.0,
    method: str | Callable = "median",
    deweight: bool = True,
    fill: float = 0.0,
    max_workers: int | None = None,
) -> jax.Array:
    """Classic ADI: subtract the temporal median PSF and combine.

    Args:
        cube: Science cube of shape (n_frames, ny, nx).
        angles: Parallactic angles in degrees, one per frame.
        inner: Inner radius of the processed annulus.
        outer: Outer radius of the processed annulus.
        fwhm: If given, frames are pruned so consecutive kept frames differ
            by at least ``threshold`` FWHM of rotation at the annulus center.
        threshold: Rotation tolerance in units of FWHM for pruning.
        method: Statistic for the final combination when ``deweight`` is False.
        deweight: Use the noise-weighted combination.
        fill: Value outside the annulus and outside the rotated field.
        max_workers: Thread count for the rotation.

    Returns:
        2D residual image of shape (ny, nx).

    Example:
        >>> residual = median_subtract(cube, angles, inner=5, outer=40)
    """
    view = AnnulusView(
        cube, inner, outer, fill=fill, angles=angles, fwhm=fwhm, threshold=threshold
    )
    X = view.flatten()
    residuals = X - np.median(X, axis=0)
    out = view.inverse(residuals)[view.times]
    return collapse(
        out,
        view.angles,
        method=method,
        deweight=deweight,
        fill=fill,
        max_workers=max_workers,
    )


def annular_pca(
    cube,
    angles,
    width: float,
    n_modes: int = 5,
    inner: float = 0.0,
    outer: float | None = None,
    method: str | Callable = "median",
    deweight: bool = True,
    fill: float = 0.0,
    max_workers: int | None = None,
) -> jax.Array:
    """KLIP/PCA PSF subtraction in contiguous annuli, then derotate and combine.

    Each annulus gets its own PCA basis built from the science frames
    themselves (ADI), so the stellar PSF model adapts to the radial
    structure of the speckles.

    Args:
        cube: Science cube of shape (n_frames, ny, nx).
        angles: Parallactic angles in degrees, one per frame.
        width: Annulus width in pixels (typically the FWHM).
        n_modes: Number of PCA modes per annulus, capped at ``n_frames - 1``.
        inner: Inner radius of the first annulus.
        outer: Outer radius of the last annulus.
        method: Statistic for the final combination when ``deweight`` is False.
        deweight: Use the noise-weighted combination.
        fill: Value outside the annuli and outside the rotated field.
        max_workers: Thread count for the rotation.

    Returns:
        2D residual image of shape (ny, nx).
    """
    view = MultiAnnulusView(cube, width, inner, outer, fill=fill)
    n_frames = view.shape[0]
    n_modes = max(min(n_modes, n_frames - 1), 1)
    logger.debug("annular PCA: %d annuli, %d modes", view.n_bands, n_modes)

    residuals = []
    for X in view.bands():
        X = jnp.asarray(X)
        basis, mean_ref = get_pca_basis(X, n_modes)
        residuals.append(np.asarray(pca_subtract(X, basis, mean_ref)))

    out = view.inverse(residuals)
    return collapse(
        out,
        angles,
        method=method,
        deweight=deweight,
        fill=fill,
        max_workers=max_workers,
    )
