r"""Sources of standard normal random numbers.

The estimators for iterated integrals consume i.i.d. standard normal samples, but do not own a
random number generator themselves. Instead, they draw from objects derived from
[`BaseNormalSource`][pyiterint.normal_sources.BaseNormalSource]. The ABC only assumes a method for
single scalar draws, and builds vector and matrix draws on top of it. Implementations wrapping a
vectorized generator should override the bulk methods for performance.

Seeding and the state lifecycle of the underlying generator are the responsibility of the caller.
A source must not be shared between concurrently running calls, unless the wrapped generator is
reentrant.

classes:
    BaseNormalSource: ABC for standard normal random sources.
    NumpyNormalSource: Source backed by a `numpy.random.Generator`.
"""

# ==================================================================================================
from abc import ABC, abstractmethod
from typing import Annotated

import numpy as np
import numpy.typing as npt
from beartype.vale import Is

from pyiterint import exceptions


# ==================================================================================================
class BaseNormalSource(ABC):
    r"""ABC for standard normal random sources.

    Bulk draws can write into caller-provided buffers, which have to match the requested shape.

    Methods:
        next_standard_normal: Draw a single standard normal sample.
        next_standard_normal_vector: Draw a vector of standard normal samples.
        next_standard_normal_matrix: Draw a matrix of standard normal samples.
    """

    # ----------------------------------------------------------------------------------------------
    @abstractmethod
    def next_standard_normal(self) -> float:
        r"""Draw a single standard normal sample.

        Raises:
            NotImplementedError: Needs to be implemented by subclasses.

        Returns:
            float: Sample $\xi \sim \mathcal{N}(0,1)$
        """
        raise NotImplementedError

    # ----------------------------------------------------------------------------------------------
    def next_standard_normal_vector(
        self,
        size: Annotated[int, Is[lambda x: x >= 0]],
        out: npt.NDArray[np.floating] | None = None,
    ) -> npt.NDArray[np.floating]:
        """Draw a vector of i.i.d. standard normal samples.

        Args:
            size (int): Number of samples
            out (npt.NDArray[np.floating] | None, optional): Buffer of shape `(size,)` to fill in
                place. Defaults to None, in which case a new array is allocated.

        Raises:
            ShapeError: If `out` is given and does not have shape `(size,)`.

        Returns:
            npt.NDArray[np.floating]: Samples of shape `(size,)`
        """
        out = _prepare_buffer(out, (size,))
        for i in range(size):
            out[i] = self.next_standard_normal()
        return out

    # ----------------------------------------------------------------------------------------------
    def next_standard_normal_matrix(
        self,
        rows: Annotated[int, Is[lambda x: x >= 0]],
        cols: Annotated[int, Is[lambda x: x >= 0]],
        out: npt.NDArray[np.floating] | None = None,
    ) -> npt.NDArray[np.floating]:
        """Draw a matrix of i.i.d. standard normal samples, filled in row-major order.

        Args:
            rows (int): Number of rows
            cols (int): Number of columns
            out (npt.NDArray[np.floating] | None, optional): Buffer of shape `(rows, cols)` to fill
                in place. Defaults to None, in which case a new array is allocated.

        Raises:
            ShapeError: If `out` is given and does not have shape `(rows, cols)`.

        Returns:
            npt.NDArray[np.floating]: Samples of shape `(rows, cols)`
        """
        out = _prepare_buffer(out, (rows, cols))
        for i in range(rows):
            for j in range(cols):
                out[i, j] = self.next_standard_normal()
        return out


# ==================================================================================================
class NumpyNormalSource(BaseNormalSource):
    """Source backed by a `numpy.random.Generator`.

    Bulk draws are delegated to the vectorized `standard_normal` method of the generator, so that
    vector and matrix samples consume the generator stream in the same order as a direct call to
    `Generator.standard_normal` with the respective shape.
    """

    # ----------------------------------------------------------------------------------------------
    def __init__(self, seed: int | None = None, rng: np.random.Generator | None = None) -> None:
        """Initialize a numpy generator with the provided seed, or wrap an existing one.

        Args:
            seed (int | None, optional): Seed for `numpy.random.default_rng`. Defaults to None,
                meaning fresh entropy from the operating system.
            rng (np.random.Generator | None, optional): Caller-managed generator to draw from. It
                is used, not copied. Defaults to None.

        Raises:
            InvalidParameterError: If both `seed` and `rng` are given.
        """
        if rng is not None and seed is not None:
            raise exceptions.InvalidParameterError(
                "Provide either a seed or an existing generator, not both."
            )
        self._rng = rng if rng is not None else np.random.default_rng(seed)

    # ----------------------------------------------------------------------------------------------
    @classmethod
    def from_generator(cls, rng: np.random.Generator) -> "NumpyNormalSource":
        """Wrap an existing, caller-managed generator."""
        return cls(rng=rng)

    # ----------------------------------------------------------------------------------------------
    def next_standard_normal(self) -> float:
        """Draw a single standard normal sample."""
        return float(self._rng.standard_normal())

    # ----------------------------------------------------------------------------------------------
    def next_standard_normal_vector(
        self,
        size: Annotated[int, Is[lambda x: x >= 0]],
        out: npt.NDArray[np.floating] | None = None,
    ) -> npt.NDArray[np.floating]:
        """Draw a vector of i.i.d. standard normal samples with a single generator call."""
        if out is None:
            return self._rng.standard_normal(size)
        _check_buffer_shape(out, (size,))
        return self._rng.standard_normal(out=out)

    # ----------------------------------------------------------------------------------------------
    def next_standard_normal_matrix(
        self,
        rows: Annotated[int, Is[lambda x: x >= 0]],
        cols: Annotated[int, Is[lambda x: x >= 0]],
        out: npt.NDArray[np.floating] | None = None,
    ) -> npt.NDArray[np.floating]:
        """Draw a matrix of i.i.d. standard normal samples with a single generator call."""
        if out is None:
            return self._rng.standard_normal((rows, cols))
        _check_buffer_shape(out, (rows, cols))
        return self._rng.standard_normal(out=out)


# ==================================================================================================
def _check_buffer_shape(out: npt.NDArray[np.floating], shape: tuple[int, ...]) -> None:
    """Raise if an output buffer does not have the requested shape."""
    if out.shape != shape:
        raise exceptions.ShapeError(
            f"Output buffer has shape {out.shape}, but samples of shape {shape} were requested."
        )


# --------------------------------------------------------------------------------------------------
def _prepare_buffer(
    out: npt.NDArray[np.floating] | None, shape: tuple[int, ...]
) -> npt.NDArray[np.floating]:
    """Allocate an output buffer, or check the shape of a provided one."""
    if out is None:
        return np.empty(shape, dtype=np.float64)
    _check_buffer_shape(out, shape)
    return out
