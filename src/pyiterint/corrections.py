r"""Itô correction for iterated integral matrices.

The samplers in [`algorithms`][pyiterint.algorithms] assemble the matrix
$\frac{1}{2}WW^T + \frac{1}{2\pi}(A - A^T)$, whose diagonal exceeds the Itô integrals
$\int_0^h\int_0^s dW_i(t)dW_i(s) = \frac{1}{2}W_i^2 - \frac{1}{2}h$ by exactly $\frac{1}{2}h$.

Functions:
    ito_correction: Subtract $h/2$ from the diagonal, in place.
    ito_corrected: Return a corrected copy.
"""

# ==================================================================================================
from numbers import Real

import numpy as np
import numpy.typing as npt

from pyiterint import exceptions


# ==================================================================================================
def ito_correction(matrix: npt.NDArray[np.floating], step_size: Real) -> None:
    r"""Apply the Itô correction to `matrix` in place.

    Subtracts $\frac{1}{2}h$ from every diagonal entry. Off-diagonal entries are not touched. The
    matrix must be exclusively owned by the calling context for the duration of the call.

    Args:
        matrix (npt.NDArray[np.floating]): Square matrix to correct
        step_size (Real): Step size $h > 0$

    Raises:
        ShapeError: If `matrix` is not a square 2D array.
        InvalidParameterError: If `step_size` is not positive.
    """
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise exceptions.ShapeError(
            f"Itô correction requires a square matrix, but got shape {matrix.shape}."
        )
    if not step_size > 0:
        raise exceptions.InvalidParameterError(f"Step size ({step_size}) must be positive.")
    diagonal_indices = np.diag_indices_from(matrix)
    matrix[diagonal_indices] -= 0.5 * step_size


# --------------------------------------------------------------------------------------------------
def ito_corrected(matrix: npt.NDArray[np.floating], step_size: Real) -> npt.NDArray[np.floating]:
    """Return an Itô-corrected copy of `matrix`, leaving the input untouched."""
    corrected_matrix = np.array(matrix, dtype=np.float64, copy=True)
    ito_correction(corrected_matrix, step_size)
    return corrected_matrix
