"""coronastack: masked annular views and derotate-and-combine for ADI cubes.

This library provides the spatial-filtering and frame-combination layer of
high-contrast imaging post-processing.

Primary API:
    - AnnulusView / MultiAnnulusView: non-copying masked views of a cube
    - derotate(): Rotate every frame by its parallactic angle
    - collapse(): Combine a cube, with the Bottom et al. (2017) noise
      weighting by default

Pipelines built on these (median subtraction, annular PCA) are in
coronastack.pipelines.
"""

from importlib.metadata import version as _get_version

__version__ = _get_version("coronastack")

# Core primitives
from coronastack.core import (
    AnnulusView,
    Cartesian,
    CoronastackError,
    CountMismatchError,
    Derotator,
    DimensionMismatchError,
    InvalidGeometryError,
    MultiAnnulusView,
    OutOfBoundsError,
    PAThresholdWarning,
    Polar,
    ShapeMismatchError,
    annuli_radii,
    band_indices,
    band_mask,
    ccw_rotation_matrix,
    collapse,
    collapse_deweighted,
    derotate,
    expand,
    flatten,
    get_center,
    get_pca_basis,
    inject_companion,
    inject_image,
    normalize_par_angles,
    pa_threshold,
    pca_subtract,
    prune_frames,
    radial_distance,
    reduce_cube,
    rotate,
    rotate_frame,
)

# ADI pipelines (high-level workflows)
from coronastack.pipelines import annular_pca, median_subtract

__all__ = [
    # Views
    "AnnulusView",
    "MultiAnnulusView",
    # Derotate and combine
    "Derotator",
    "collapse",
    "collapse_deweighted",
    "derotate",
    "reduce_cube",
    "rotate",
    "rotate_frame",
    # Pipelines
    "annular_pca",
    "median_subtract",
    # Geometry
    "annuli_radii",
    "band_indices",
    "band_mask",
    "get_center",
    "pa_threshold",
    "prune_frames",
    "radial_distance",
    # Image Transforms
    "ccw_rotation_matrix",
    # Cube helpers
    "expand",
    "flatten",
    "normalize_par_angles",
    # Forward Modeling
    "Cartesian",
    "Polar",
    "inject_companion",
    "inject_image",
    # PCA
    "get_pca_basis",
    "pca_subtract",
    # Errors
    "CoronastackError",
    "CountMismatchError",
    "DimensionMismatchError",
    "InvalidGeometryError",
    "OutOfBoundsError",
    "PAThresholdWarning",
    "ShapeMismatchError",
]
