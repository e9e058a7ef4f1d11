"""Principal Component Analysis (PCA/KLIP) on flattened cubes.

Inputs are the ``(n_frames, n_pixels)`` matrices produced by
``AnnulusView.flatten``, ``MultiAnnulusView.band`` or ``flatten(cube)``.
With far fewer frames than pixels, the principal images are found from the
small frame-by-frame Gram matrix rather than the pixel covariance.
"""

import functools

import jax
import jax.numpy as jnp


def _center_rows(matrix: jnp.ndarray) -> tuple[jnp.ndarray, jnp.ndarray]:
    mean_row = jnp.mean(matrix, axis=0)
    return matrix - mean_row, mean_row


@functools.partial(jax.jit, static_argnames=["n_modes"])
def get_pca_basis(
    ref_matrix: jnp.ndarray,
    n_modes: int,
) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Principal images of a reference matrix, strongest first.

    Args:
        ref_matrix: Reference frames unrolled to shape (N_frames, N_pixels).
        n_modes: Number of modes to keep. At most N_frames are returned.

    Returns:
        basis: Orthonormal rows of shape (n_modes, N_pixels).
        mean_ref: The mean reference row, shape (N_pixels,).
    """
    residual, mean_ref = _center_rows(ref_matrix)
    n_frames = residual.shape[0]
    n_keep = min(n_modes, n_frames)

    eigvals, eigvecs = jnp.linalg.eigh(residual @ residual.T)
    # eigh is ascending
    top_vals = jnp.flip(eigvals[n_frames - n_keep :])
    top_vecs = jnp.flip(eigvecs[:, n_frames - n_keep :], axis=1)

    # each frame-space eigenvector maps to a pixel-space one of norm sqrt(val)
    scale = jax.lax.rsqrt(jnp.clip(top_vals, 1e-12))
    basis = jnp.einsum("fk,fp->kp", top_vecs, residual) * scale[:, None]
    return basis, mean_ref


@jax.jit
def pca_subtract(
    matrix: jnp.ndarray,
    basis: jnp.ndarray,
    mean_ref: jnp.ndarray,
) -> jnp.ndarray:
    """Remove the projection of each mean-subtracted row onto ``basis``.

    Args:
        matrix: Unrolled frames, shape (N_frames, N_pixels).
        basis: Rows from `get_pca_basis`, shape (n_modes, N_pixels).
        mean_ref: Mean reference from `get_pca_basis`, shape (N_pixels,).

    Returns:
        Residuals, shape (N_frames, N_pixels).
    """
    residual = matrix - mean_ref
    weights = jnp.einsum("fp,kp->fk", residual, basis)
    return residual - weights @ basis
