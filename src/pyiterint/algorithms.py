r"""Truncated-series algorithms for iterated Itô integrals.

For an $m$-dimensional Wiener increment $W$ over the unit step, the iterated integrals
$I_{ij} = \int_0^1\int_0^s dW_i(t)dW_j(s)$ decompose into a deterministic symmetric part and the
random Lévy area,

$$
    I = \frac{1}{2}WW^T + \frac{1}{2\pi}\big(A - A^T\big) - \frac{1}{2}\mathbb{I}.
$$

The algorithms in this module approximate the area matrix $A$ by the first $n$ terms of its
Fourier series representation. The samplers return the matrix without the Itô correction term
$-\frac{1}{2}\mathbb{I}$, which is applied by the caller (c.f. [`corrections`][pyiterint.corrections]).

Each algorithm is implemented as a stateless strategy object deriving from
[`BaseIteratedIntegralAlgorithm`][pyiterint.algorithms.BaseIteratedIntegralAlgorithm], with a rule
for the number of terms needed to reach a given $L^2$ error and the actual sampling routine. The
set of algorithms is closed, and strategies are selected via the
[`AlgorithmVariant`][pyiterint.algorithms.AlgorithmVariant] enum.

References:
    G. N. Milstein (1994) Numerical Integration of Stochastic Differential Equations
    M. Wiktorsson (2001) Joint Characteristic Function and Simultaneous Simulation of Iterated Itô
        Integrals for Multiple Independent Brownian Motions

Classes:
    AlgorithmVariant: Closed set of available algorithms.
    BaseIteratedIntegralAlgorithm: ABC for truncated-series algorithms.
    MilsteinAlgorithm: Plain truncated-series estimator.
    WiktorssonAlgorithm: Truncated-series estimator with simulated tail sum.

Functions:
    get_algorithm: Return the strategy object for an algorithm variant.
"""  # noqa: E501

# ==================================================================================================
import enum
import math
from abc import ABC, abstractmethod
from numbers import Real
from typing import final

import numba
import numpy as np
import numpy.typing as npt
from beartype import BeartypeConf, BeartypeStrategy, beartype
from scipy.special import polygamma

from pyiterint import exceptions, normal_sources, workspaces

nobeartype = beartype(conf=BeartypeConf(strategy=BeartypeStrategy.O0))
"""Decorator to deactivate type checking."""

SQRT_TWO = math.sqrt(2.0)


# ==================================================================================================
class AlgorithmVariant(enum.Enum):
    """Closed set of available algorithms."""

    MILSTEIN = "milstein"
    WIKTORSSON = "wiktorsson"


DEFAULT_ALGORITHM = AlgorithmVariant.WIKTORSSON
"""Recommended algorithm, used as keyword default throughout the package."""


# ==================================================================================================
class BaseIteratedIntegralAlgorithm(ABC):
    r"""ABC for truncated-series algorithms.

    Subclasses implement the number of terms needed for a prescribed $L^2$ error and the sampling
    routine. The shared first stage, the truncated series for the area matrix, and the final
    assembly of the integral matrix are provided by the base class.

    Methods:
        terms_needed: Number of series terms for a prescribed $L^2$ error.
        sample: Sample the iterated integral matrix for a unit step.
    """

    # ----------------------------------------------------------------------------------------------
    @abstractmethod
    def terms_needed(
        self, increment: npt.NDArray[np.floating], step_size: Real, tolerance: Real
    ) -> int:
        r"""Number of series terms for a prescribed $L^2$ error.

        Arguments are assumed to be validated by the caller.

        Args:
            increment (npt.NDArray[np.floating]): Wiener increment $W$ over the step, shape $(m,)$
            step_size (Real): Step size $h > 0$
            tolerance (Real): Admissible $L^2$ error $\varepsilon > 0$

        Raises:
            NotImplementedError: Needs to be implemented by subclasses.

        Returns:
            int: Number of terms $n$
        """
        raise NotImplementedError

    # ----------------------------------------------------------------------------------------------
    @abstractmethod
    def sample(
        self,
        unit_increment: npt.NDArray[np.floating],
        num_terms: int,
        normal_source: normal_sources.BaseNormalSource,
        workspace: workspaces.IntegralWorkspace,
    ) -> npt.NDArray[np.floating]:
        r"""Sample the iterated integral matrix for a unit step, without Itô correction.

        Arguments are assumed to be validated by the caller, and the workspace to be held
        exclusively by the calling context.

        Args:
            unit_increment (npt.NDArray[np.floating]): Increment rescaled to unit step,
                $W/\sqrt{h}$, shape $(m,)$
            num_terms (int): Number of series terms $n \geq 0$
            normal_source (normal_sources.BaseNormalSource): Source of standard normal samples
            workspace (workspaces.IntegralWorkspace): Buffers for dimension $m$

        Raises:
            NotImplementedError: Needs to be implemented by subclasses.

        Returns:
            npt.NDArray[np.floating]: Matrix $G$ of shape $m \times m$, aliasing `workspace.result`
        """
        raise NotImplementedError

    # ----------------------------------------------------------------------------------------------
    @staticmethod
    def _simulate_area(
        unit_increment: npt.NDArray[np.floating],
        num_terms: int,
        normal_source: normal_sources.BaseNormalSource,
        workspace: workspaces.IntegralWorkspace,
    ) -> npt.NDArray[np.floating]:
        r"""Truncated series $A = YZ$ for the area matrix.

        The $k$-th column of $Y$ is $(X_k - \sqrt{2}W)/k$, where $X_k$ and the rows of $Z$ are
        independent standard normal vectors. $X$ is drawn before $Z$.
        """
        dimension = unit_increment.shape[0]
        series_matrix = workspace.series_matrix(num_terms)
        coefficient_matrix = workspace.coefficient_matrix(num_terms)

        normal_source.next_standard_normal_matrix(dimension, num_terms, out=series_matrix)
        series_matrix -= SQRT_TWO * unit_increment[:, np.newaxis]
        series_matrix /= np.arange(1, num_terms + 1, dtype=np.float64)
        normal_source.next_standard_normal_matrix(num_terms, dimension, out=coefficient_matrix)
        np.matmul(series_matrix, coefficient_matrix, out=workspace.area)
        return workspace.area

    # ----------------------------------------------------------------------------------------------
    @staticmethod
    def _assemble(
        unit_increment: npt.NDArray[np.floating],
        area: npt.NDArray[np.floating],
        out: npt.NDArray[np.floating],
    ) -> npt.NDArray[np.floating]:
        r"""Assemble $G = \frac{1}{2}WW^T + \frac{1}{2\pi}(A - A^T)$ into `out`."""
        np.subtract(area, area.T, out=out)
        out *= 1.0 / (2.0 * math.pi)
        out += 0.5 * np.outer(unit_increment, unit_increment)
        return out


# ==================================================================================================
@final
class MilsteinAlgorithm(BaseIteratedIntegralAlgorithm):
    r"""Plain truncated-series estimator.

    The area matrix is approximated by the first $n$ terms of its series, the remainder is
    discarded. For an $L^2$ error $\varepsilon$ at step size $h$, the number of terms is

    $$
        n = \Big\lceil \frac{1}{2}\Big(\frac{h}{\pi\varepsilon}\Big)^2 \Big\rceil,
    $$

    independently of the increment and its dimension. The sampler needs approximately
    $2mn + m^2$ floats, the time complexity is $\mathcal{O}(m^2n)$.
    """

    # ----------------------------------------------------------------------------------------------
    def terms_needed(
        self, increment: npt.NDArray[np.floating], step_size: Real, tolerance: Real
    ) -> int:
        """Number of terms, depending on step size and tolerance only."""
        ratio = step_size / (math.pi * tolerance)
        return _ceil_terms(0.5 * ratio * ratio)

    # ----------------------------------------------------------------------------------------------
    def sample(
        self,
        unit_increment: npt.NDArray[np.floating],
        num_terms: int,
        normal_source: normal_sources.BaseNormalSource,
        workspace: workspaces.IntegralWorkspace,
    ) -> npt.NDArray[np.floating]:
        """Sample the truncated series and assemble the integral matrix."""
        area = self._simulate_area(unit_increment, num_terms, normal_source, workspace)
        return self._assemble(unit_increment, area, workspace.result)


# ==================================================================================================
@final
class WiktorssonAlgorithm(BaseIteratedIntegralAlgorithm):
    r"""Truncated-series estimator with simulated tail sum.

    In addition to the first $n$ terms of the series, the remainder is approximated by a Gaussian
    matrix with the exact asymptotic covariance. The residual is represented by a random skew
    matrix $G_n$ with entries of variance $2\psi'(n+1) = 2\sum_{k>n}k^{-2}$, where $\psi'$ denotes
    the trigamma function, and a closed-form correction accounting for the dependence on the
    increment,

    $$
        A \leftarrow A + G_n^{\flat} + \frac{1}{1 + \sqrt{1 + W^TW}}(G_nW)W^T,
    $$

    with $G_n^{\flat}$ the strictly lower triangle of $G_n$. This reduces the error from
    $\mathcal{O}(n^{-1/2})$ to $\mathcal{O}(n^{-1})$, and the number of terms becomes

    $$
        n = \Big\lceil \sqrt{\frac{m(m-1)(m + 4\|W\|^2/h)}{6}}\frac{h}{2\pi\varepsilon} \Big\rceil.
    $$

    The sampler needs approximately $2mn + 3m^2 + m$ floats, the time complexity is
    $\mathcal{O}(m^2n)$.
    """

    # ----------------------------------------------------------------------------------------------
    def terms_needed(
        self, increment: npt.NDArray[np.floating], step_size: Real, tolerance: Real
    ) -> int:
        """Number of terms, depending on the realized increment and its dimension.

        Raises:
            NumericDomainError: If the square root argument is negative or not finite.
        """
        dimension = increment.shape[0]
        squared_norm = float(increment @ increment)
        radicand = dimension * (dimension - 1) * (dimension + 4 * squared_norm / step_size) / 6
        if not (math.isfinite(radicand) and radicand >= 0):
            raise exceptions.NumericDomainError(
                f"Cannot determine number of terms from square root of {radicand}."
            )
        return _ceil_terms(math.sqrt(radicand) * step_size / (2 * math.pi * tolerance))

    # ----------------------------------------------------------------------------------------------
    def sample(
        self,
        unit_increment: npt.NDArray[np.floating],
        num_terms: int,
        normal_source: normal_sources.BaseNormalSource,
        workspace: workspaces.IntegralWorkspace,
    ) -> npt.NDArray[np.floating]:
        """Sample the truncated series, add the simulated tail sum and assemble.

        Raises:
            NumericDomainError: If the trigamma function does not yield a positive finite value.
        """
        area = self._simulate_area(unit_increment, num_terms, normal_source, workspace)

        trigamma = float(polygamma(1, num_terms + 1))
        if not (math.isfinite(trigamma) and trigamma > 0):
            raise exceptions.NumericDomainError(
                f"Trigamma of {num_terms + 1} evaluates to {trigamma}."
            )
        residual_scale = math.sqrt(2.0 * trigamma)
        residual = workspace.residual
        residual_draws = workspace.residual_draws
        normal_source.next_standard_normal_vector(residual_draws.shape[0], out=residual_draws)
        _jitted_fill_residual(residual, area, residual_draws, residual_scale)

        tail_factor = 1.0 / (1.0 + math.sqrt(1.0 + float(unit_increment @ unit_increment)))
        area += tail_factor * np.outer(residual @ unit_increment, unit_increment)
        return self._assemble(unit_increment, area, workspace.result)


# ==================================================================================================
@nobeartype
def _fill_residual(
    residual: npt.NDArray[np.floating],
    area: npt.NDArray[np.floating],
    residual_draws: npt.NDArray[np.floating],
    residual_scale: float,
) -> None:
    """Numba jittable loop filling the residual skew matrix and adding it to the area matrix.

    Pairs are visited column by column, consuming one draw per entry below the diagonal.

    !!! warning
        Jitted functions with numba cannot be type checked with beartype. The `@nobeartype`
        decorator is used to suppress the type checking for this function.
    """
    dimension = residual.shape[0]
    draw_index = 0
    for j in range(dimension):
        residual[j, j] = 0.0
        for i in range(j + 1, dimension):
            value = residual_scale * residual_draws[draw_index]
            residual[i, j] = value
            residual[j, i] = -value
            area[i, j] += value
            draw_index += 1


_jitted_fill_residual = numba.njit(_fill_residual)


# --------------------------------------------------------------------------------------------------
def _ceil_terms(value: float) -> int:
    """Round a number of terms up, rejecting values that cannot be represented."""
    if not math.isfinite(value):
        raise exceptions.NumericDomainError(f"Number of terms {value} is not finite.")
    return math.ceil(value)


# ==================================================================================================
_ALGORITHMS = {
    AlgorithmVariant.MILSTEIN: MilsteinAlgorithm(),
    AlgorithmVariant.WIKTORSSON: WiktorssonAlgorithm(),
}


def get_algorithm(variant: AlgorithmVariant) -> BaseIteratedIntegralAlgorithm:
    """Return the strategy object for an algorithm variant.

    Args:
        variant (AlgorithmVariant): Algorithm to use

    Returns:
        BaseIteratedIntegralAlgorithm: Stateless strategy implementing the algorithm
    """
    return _ALGORITHMS[variant]
