"""Angular differential imaging pipelines.

High-level workflows:
    - median_subtract: Classic ADI inside one annulus
    - annular_pca: PCA/KLIP PSF subtraction per annulus

Derotate-and-combine primitives are in coronastack.core.collapse.
"""

from coronastack.pipelines.adi import (
    annular_pca,
    median_subtract,
)

__all__ = [
    "annular_pca",
    "median_subtract",
]
