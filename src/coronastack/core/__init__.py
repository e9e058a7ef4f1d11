"""Core primitives for coronastack.

Geometry and views work on host-side numpy buffers so they can alias the
caller's cube; rotation and combination are JAX functions.
"""

from coronastack.core.annulus import AnnulusView
from coronastack.core.collapse import (
    Derotator,
    collapse,
    collapse_deweighted,
    reduce_cube,
)
from coronastack.core.cube import expand, flatten, normalize_par_angles
from coronastack.core.errors import (
    CoronastackError,
    CountMismatchError,
    DimensionMismatchError,
    InvalidGeometryError,
    OutOfBoundsError,
    PAThresholdWarning,
    ShapeMismatchError,
)
from coronastack.core.geometry import (
    annuli_radii,
    band_indices,
    band_mask,
    clamp_pa_threshold,
    get_center,
    inside_band,
    pa_threshold,
    prune_frames,
    radial_distance,
)
from coronastack.core.image_transforms import (
    ccw_rotation_matrix,
    derotate,
    rotate,
    rotate_frame,
)
from coronastack.core.modeling import (
    Cartesian,
    Polar,
    inject_companion,
    inject_image,
    to_cartesian,
)
from coronastack.core.multiannulus import MultiAnnulusView
from coronastack.core.pca import get_pca_basis, pca_subtract

__all__ = [
    # Views
    "AnnulusView",
    "MultiAnnulusView",
    # Geometry
    "annuli_radii",
    "band_indices",
    "band_mask",
    "clamp_pa_threshold",
    "get_center",
    "inside_band",
    "pa_threshold",
    "prune_frames",
    "radial_distance",
    # Image Transforms
    "ccw_rotation_matrix",
    "derotate",
    "rotate",
    "rotate_frame",
    # Collapse
    "Derotator",
    "collapse",
    "collapse_deweighted",
    "reduce_cube",
    # Cube helpers
    "expand",
    "flatten",
    "normalize_par_angles",
    # Modeling
    "Cartesian",
    "Polar",
    "inject_companion",
    "inject_image",
    "to_cartesian",
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
