r"""Reusable buffers for repeated sampling of iterated integrals.

Every sample of the iterated integral matrix for an $m$-dimensional increment and $n$ series terms
requires two random matrices of size $m \times n$ and $n \times m$, as well as a few $m \times m$
matrices. For SDE integrators that call the sampler once per step, with fixed $m$, these
allocations can be avoided by passing a [`IntegralWorkspace`][pyiterint.workspaces.IntegralWorkspace]
to the samplers.

A workspace is bound to a noise dimension $m$. The number of terms $n$ typically changes from call
to call, as it can depend on the realized increment. The workspace therefore keeps a term capacity
that is increased on demand, whereas calls with fewer terms use a prefix of the existing flat
buffers. All matrices handed out are C-contiguous views into these buffers.

!!! warning: Single ownership

    A workspace is a single-owner resource. Only one in-flight call may hold it, which is enforced
    by using the workspace as a context manager. Results returned by the samplers alias the
    workspace's result buffer and are only valid until the next call using the same workspace.

classes:
    IntegralWorkspace: Preallocated buffers for a fixed noise dimension.
"""  # noqa: E501

# ==================================================================================================
import logging
import threading
from types import TracebackType
from typing import Annotated

import numpy as np
import numpy.typing as npt
from beartype.vale import Is

from pyiterint import exceptions

logger = logging.getLogger(__name__)


# ==================================================================================================
class IntegralWorkspace:
    r"""Preallocated buffers for a fixed noise dimension.

    The workspace holds flat buffers for the series matrix $Y\in\mathbb{R}^{m\times n}$ and the
    coefficient matrix $Z\in\mathbb{R}^{n\times m}$, and square buffers for the area matrix $A$,
    the residual skew matrix and the result $G$. The residual and the flat buffer for its
    $m(m-1)/2$ draws are allocated lazily, only the tail-corrected algorithm needs them.

    Methods:
        __enter__: Take exclusive ownership of the workspace, as a context manager.
        check_dimension: Raise if the workspace does not fit a given noise dimension.
        reserve: Ensure capacity for a number of series terms.
        series_matrix: View of shape $m \times n$ for the series matrix.
        coefficient_matrix: View of shape $n \times m$ for the coefficient matrix.
    """

    # ----------------------------------------------------------------------------------------------
    def __init__(
        self,
        dimension: Annotated[int, Is[lambda x: x > 0]],
        num_terms: Annotated[int, Is[lambda x: x >= 0]] = 0,
    ) -> None:
        """Allocate buffers for the given noise dimension and initial term capacity.

        Args:
            dimension (int): Dimension $m$ of the Wiener increment
            num_terms (int, optional): Initial term capacity. Defaults to 0, meaning that buffers
                are allocated on first use.
        """
        self._dimension = dimension
        self._term_capacity = 0
        self._series_buffer = np.empty(0, dtype=np.float64)
        self._coefficient_buffer = np.empty(0, dtype=np.float64)
        self._area = np.empty((dimension, dimension), dtype=np.float64)
        self._result = np.empty((dimension, dimension), dtype=np.float64)
        self._residual = None
        self._residual_draws = None
        self._lock = threading.Lock()
        self.reserve(num_terms)

    # ----------------------------------------------------------------------------------------------
    @property
    def dimension(self) -> int:
        """Noise dimension the workspace is bound to."""
        return self._dimension

    # ----------------------------------------------------------------------------------------------
    @property
    def term_capacity(self) -> int:
        """Largest number of series terms the current buffers can hold."""
        return self._term_capacity

    # ----------------------------------------------------------------------------------------------
    def __enter__(self) -> "IntegralWorkspace":
        """Take exclusive ownership of the workspace.

        Raises:
            WorkspaceInUseError: If another call currently holds the workspace.

        Returns:
            IntegralWorkspace: The workspace itself
        """
        if not self._lock.acquire(blocking=False):
            raise exceptions.WorkspaceInUseError(
                "Workspace is already in use by another call. Use one workspace per thread."
            )
        return self

    # ----------------------------------------------------------------------------------------------
    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Release ownership of the workspace."""
        self._lock.release()

    # ----------------------------------------------------------------------------------------------
    def check_dimension(self, dimension: int) -> None:
        """Raise if the workspace does not fit a given noise dimension.

        Args:
            dimension (int): Dimension $m$ of the increment to be processed

        Raises:
            ShapeError: If `dimension` differs from the workspace dimension.
        """
        if dimension != self._dimension:
            raise exceptions.ShapeError(
                f"Workspace has been allocated for dimension {self._dimension}, "
                f"but increment has dimension {dimension}."
            )

    # ----------------------------------------------------------------------------------------------
    def reserve(self, num_terms: Annotated[int, Is[lambda x: x >= 0]]) -> None:
        """Ensure capacity for a number of series terms, reallocating if necessary.

        Args:
            num_terms (int): Number of series terms $n$
        """
        if num_terms <= self._term_capacity:
            return
        if self._term_capacity > 0:
            logger.debug(
                f"Growing workspace term capacity from {self._term_capacity} to {num_terms} "
                f"(dimension {self._dimension})."
            )
        buffer_size = self._dimension * num_terms
        self._series_buffer = np.empty(buffer_size, dtype=np.float64)
        self._coefficient_buffer = np.empty(buffer_size, dtype=np.float64)
        self._term_capacity = num_terms

    # ----------------------------------------------------------------------------------------------
    def series_matrix(self, num_terms: Annotated[int, Is[lambda x: x >= 0]]) -> npt.NDArray:
        r"""Contiguous view of shape $m \times n$ for the series matrix $Y$."""
        self.reserve(num_terms)
        buffer_size = self._dimension * num_terms
        return self._series_buffer[:buffer_size].reshape(self._dimension, num_terms)

    # ----------------------------------------------------------------------------------------------
    def coefficient_matrix(self, num_terms: Annotated[int, Is[lambda x: x >= 0]]) -> npt.NDArray:
        r"""Contiguous view of shape $n \times m$ for the coefficient matrix $Z$."""
        self.reserve(num_terms)
        buffer_size = self._dimension * num_terms
        return self._coefficient_buffer[:buffer_size].reshape(num_terms, self._dimension)

    # ----------------------------------------------------------------------------------------------
    @property
    def area(self) -> npt.NDArray:
        r"""Buffer of shape $m \times m$ for the area matrix $A$."""
        return self._area

    # ----------------------------------------------------------------------------------------------
    @property
    def residual(self) -> npt.NDArray:
        r"""Buffer of shape $m \times m$ for the residual skew matrix, allocated on first use."""
        if self._residual is None:
            self._residual = np.empty((self._dimension, self._dimension), dtype=np.float64)
        return self._residual

    # ----------------------------------------------------------------------------------------------
    @property
    def residual_draws(self) -> npt.NDArray:
        r"""Buffer of shape $m(m-1)/2$ for the draws of the residual, allocated on first use."""
        if self._residual_draws is None:
            num_pairs = self._dimension * (self._dimension - 1) // 2
            self._residual_draws = np.empty(num_pairs, dtype=np.float64)
        return self._residual_draws

    # ----------------------------------------------------------------------------------------------
    @property
    def result(self) -> npt.NDArray:
        r"""Buffer of shape $m \times m$ for the iterated integral matrix $G$."""
        return self._result
