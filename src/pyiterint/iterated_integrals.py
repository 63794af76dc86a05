r"""Simulation of iterated Itô integrals for multidimensional Wiener increments.

This module is the main entry point for the simulation of iterated integrals. For a given
$m$-dimensional increment $W$ of a Wiener process over a step of size $h$, it samples an
approximation of the matrix

$$
    I_{ij} = \int_0^h\int_0^s dW_i(t)dW_j(s),\quad 1 \leq i,j \leq m,
$$

with an $L^2$ error of at most $\varepsilon$. The pipeline is always the same: determine the
number of series terms, sample the integrals for the rescaled increment $W/\sqrt{h}$ with the
chosen algorithm, scale the result by $h$, and optionally apply the Itô correction. For $m=1$,
the integral is known in closed form and no sampling takes place.

Functions:
    terms_needed: Number of series terms for a prescribed $L^2$ error.
    sample_raw: Sample the uncorrected integral matrix for a unit step.
    simulate: Sample the iterated integral matrix for a Wiener increment.
    simulate_scalar: Closed form for a scalar Wiener increment.
    simulate_batch: Sample iterated integrals for an ensemble of increments.
"""

# ==================================================================================================
import logging
import math
from numbers import Real

import numpy as np
import numpy.typing as npt
from tqdm import tqdm

from pyiterint import algorithms, corrections, exceptions, normal_sources, workspaces

logger = logging.getLogger(__name__)


# ==================================================================================================
def terms_needed(
    increment: npt.NDArray[np.floating],
    step_size: Real,
    tolerance: Real,
    algorithm: algorithms.AlgorithmVariant = algorithms.DEFAULT_ALGORITHM,
) -> int:
    r"""Number of series terms needed to ensure an $L^2$ error of at most `tolerance`.

    This depends on the step size and the chosen algorithm. For the Wiktorsson algorithm, it
    additionally depends on the realization of the Wiener increment.

    Args:
        increment (npt.NDArray[np.floating]): Wiener increment $W$ over the step, shape $(m,)$
        step_size (Real): Step size $h$
        tolerance (Real): Admissible $L^2$ error $\varepsilon$
        algorithm (algorithms.AlgorithmVariant, optional): Algorithm to use.
            Defaults to `DEFAULT_ALGORITHM`.

    Raises:
        InvalidParameterError: If `step_size` or `tolerance` is not positive.
        ShapeError: If `increment` is not a 1D array.

    Returns:
        int: Number of terms $n$
    """
    _check_step_and_tolerance(step_size, tolerance)
    _check_increment(increment)
    return algorithms.get_algorithm(algorithm).terms_needed(increment, step_size, tolerance)


# --------------------------------------------------------------------------------------------------
def sample_raw(
    unit_increment: npt.NDArray[np.floating],
    num_terms: int,
    algorithm: algorithms.AlgorithmVariant = algorithms.DEFAULT_ALGORITHM,
    normal_source: normal_sources.BaseNormalSource | None = None,
    workspace: workspaces.IntegralWorkspace | None = None,
) -> npt.NDArray[np.floating]:
    r"""Sample the iterated integral matrix for a unit step, without Itô correction.

    Args:
        unit_increment (npt.NDArray[np.floating]): Increment rescaled to unit step $W/\sqrt{h}$,
            shape $(m,)$
        num_terms (int): Number of series terms $n$
        algorithm (algorithms.AlgorithmVariant, optional): Algorithm to use.
            Defaults to `DEFAULT_ALGORITHM`.
        normal_source (normal_sources.BaseNormalSource | None, optional): Source of standard
            normal samples. Defaults to None, meaning a freshly seeded numpy source.
        workspace (workspaces.IntegralWorkspace | None, optional): Reusable buffers. If given, the
            returned matrix aliases the workspace's result buffer. Defaults to None.

    Raises:
        InvalidParameterError: If `num_terms` is negative.
        ShapeError: If `unit_increment` is not a non-empty 1D array, or does not match the
            workspace dimension.
        WorkspaceInUseError: If the workspace is held by another call.

    Returns:
        npt.NDArray[np.floating]: Matrix of shape $m \times m$
    """
    if num_terms < 0:
        raise exceptions.InvalidParameterError(f"Number of terms ({num_terms}) must be >= 0.")
    _check_increment(unit_increment)
    normal_source, workspace = _resolve_resources(unit_increment, normal_source, workspace)
    with workspace:
        return algorithms.get_algorithm(algorithm).sample(
            unit_increment, num_terms, normal_source, workspace
        )


# --------------------------------------------------------------------------------------------------
def simulate(
    increment: npt.NDArray[np.floating],
    step_size: Real,
    tolerance: Real,
    algorithm: algorithms.AlgorithmVariant = algorithms.DEFAULT_ALGORITHM,
    ito_correction: bool = True,
    normal_source: normal_sources.BaseNormalSource | None = None,
    workspace: workspaces.IntegralWorkspace | None = None,
) -> npt.NDArray[np.floating]:
    r"""Sample the iterated integral matrix for a Wiener increment.

    Simulates an approximation of $\int_0^h\int_0^s dW_i(t)dW_j(s)$ for all pairs
    $1 \leq i,j \leq m$, with an $L^2$ error of at most `tolerance`. For $m=1$, the exact value
    $\frac{1}{2}W^2 - \frac{1}{2}h$ is returned without consuming random numbers.

    Example:
        ```python
        h = 0.5
        W = np.array([1.0, 0.5])
        np.diag(simulate(W, h, h**1.5))  # array([ 0.25 , -0.125])
        ```

    Args:
        increment (npt.NDArray[np.floating]): Wiener increment $W$ over the step, shape $(m,)$
        step_size (Real): Step size $h$
        tolerance (Real): Admissible $L^2$ error $\varepsilon$
        algorithm (algorithms.AlgorithmVariant, optional): Algorithm to use.
            Defaults to `DEFAULT_ALGORITHM`.
        ito_correction (bool, optional): Whether to apply the Itô correction. Defaults to True.
        normal_source (normal_sources.BaseNormalSource | None, optional): Source of standard
            normal samples. Defaults to None, meaning a freshly seeded numpy source.
        workspace (workspaces.IntegralWorkspace | None, optional): Reusable buffers. If given, the
            returned matrix aliases the workspace's result buffer. Defaults to None.

    Raises:
        InvalidParameterError: If `step_size` or `tolerance` is not positive.
        ShapeError: If `increment` is not a non-empty 1D array, or does not match the workspace.
        NumericDomainError: If the number of terms or the tail scaling cannot be evaluated.
        WorkspaceInUseError: If the workspace is held by another call.

    Returns:
        npt.NDArray[np.floating]: Iterated integral matrix of shape $m \times m$
    """
    _check_step_and_tolerance(step_size, tolerance)
    _check_increment(increment)

    if increment.shape[0] == 1:
        if workspace is not None:
            workspace.check_dimension(1)
        scalar_integral = 0.5 * increment[0] ** 2
        if ito_correction:
            scalar_integral = simulate_scalar(increment[0], step_size)
        return np.array([[scalar_integral]], dtype=np.float64)

    strategy = algorithms.get_algorithm(algorithm)
    num_terms = strategy.terms_needed(increment, step_size, tolerance)
    logger.debug(
        f"Simulating {increment.shape[0]}-dimensional iterated integrals with "
        f"{algorithm.value} algorithm, {num_terms} terms."
    )
    unit_increment = increment / math.sqrt(step_size)
    normal_source, workspace = _resolve_resources(unit_increment, normal_source, workspace)

    with workspace:
        iterated_integrals = strategy.sample(unit_increment, num_terms, normal_source, workspace)
        iterated_integrals *= step_size
        if ito_correction:
            corrections.ito_correction(iterated_integrals, step_size)
    return iterated_integrals


# --------------------------------------------------------------------------------------------------
def simulate_scalar(increment: Real, step_size: Real = 1.0) -> float:
    r"""Closed form $\frac{1}{2}W^2 - \frac{1}{2}h$ for a scalar Wiener increment.

    Args:
        increment (Real): Scalar Wiener increment $W$
        step_size (Real, optional): Step size $h$. Defaults to 1.0.

    Raises:
        InvalidParameterError: If `step_size` is not positive.

    Returns:
        float: Iterated Itô integral $\int_0^h\int_0^s dW(t)dW(s)$
    """
    if not step_size > 0:
        raise exceptions.InvalidParameterError(f"Step size ({step_size}) must be positive.")
    return float(0.5 * increment**2 - 0.5 * step_size)


# --------------------------------------------------------------------------------------------------
def simulate_batch(
    increments: npt.NDArray[np.floating],
    step_size: Real,
    tolerance: Real,
    algorithm: algorithms.AlgorithmVariant = algorithms.DEFAULT_ALGORITHM,
    ito_correction: bool = True,
    normal_source: normal_sources.BaseNormalSource | None = None,
    workspace: workspaces.IntegralWorkspace | None = None,
    progress_bar: bool = False,
) -> npt.NDArray[np.floating]:
    r"""Sample iterated integrals for an ensemble of increments.

    Increments are given in vectorized form $m \times N$, one column per trajectory. Every column
    is processed independently, sharing a single workspace. The number of terms is determined per
    column, so that every sample satisfies the prescribed error.

    Args:
        increments (npt.NDArray[np.floating]): Wiener increments of shape $m \times N$
        step_size (Real): Step size $h$
        tolerance (Real): Admissible $L^2$ error $\varepsilon$
        algorithm (algorithms.AlgorithmVariant, optional): Algorithm to use.
            Defaults to `DEFAULT_ALGORITHM`.
        ito_correction (bool, optional): Whether to apply the Itô correction. Defaults to True.
        normal_source (normal_sources.BaseNormalSource | None, optional): Source of standard
            normal samples. Defaults to None, meaning a freshly seeded numpy source.
        workspace (workspaces.IntegralWorkspace | None, optional): Reusable buffers. Defaults to
            None, in which case one workspace is allocated for the whole batch.
        progress_bar (bool, optional): Whether to display a progress bar. Defaults to False.

    Raises:
        InvalidParameterError: If `step_size` or `tolerance` is not positive.
        ShapeError: If `increments` is not a 2D array with at least one row.

    Returns:
        npt.NDArray[np.floating]: Iterated integrals of shape $m \times m \times N$
    """
    _check_step_and_tolerance(step_size, tolerance)
    if increments.ndim != 2 or increments.shape[0] == 0:
        raise exceptions.ShapeError(
            f"Increments need to be of shape (m, N) with m > 0, but have shape {increments.shape}."
        )
    dimension, num_trajectories = increments.shape

    if dimension == 1:
        if workspace is not None:
            workspace.check_dimension(1)
        scalar_integrals = 0.5 * increments**2
        if ito_correction:
            scalar_integrals -= 0.5 * step_size
        return scalar_integrals.reshape(1, 1, num_trajectories)

    normal_source, workspace = _resolve_resources(increments[:, 0], normal_source, workspace)
    iterated_integrals = np.empty((dimension, dimension, num_trajectories), dtype=np.float64)
    for i in tqdm(range(num_trajectories), disable=not progress_bar):
        iterated_integrals[:, :, i] = simulate(
            increments[:, i],
            step_size,
            tolerance,
            algorithm,
            ito_correction,
            normal_source,
            workspace,
        )
    return iterated_integrals


# ============================================ Utilities ===========================================
def _check_step_and_tolerance(step_size: Real, tolerance: Real) -> None:
    """Check that step size and tolerance are positive."""
    if not step_size > 0:
        raise exceptions.InvalidParameterError(f"Step size ({step_size}) must be positive.")
    if not tolerance > 0:
        raise exceptions.InvalidParameterError(f"Tolerance ({tolerance}) must be positive.")


# --------------------------------------------------------------------------------------------------
def _check_increment(increment: npt.NDArray[np.floating]) -> None:
    """Check that an increment is a non-empty 1D array."""
    if increment.ndim != 1 or increment.shape[0] == 0:
        raise exceptions.ShapeError(
            f"Increment needs to be a non-empty 1D array, but has shape {increment.shape}."
        )


# --------------------------------------------------------------------------------------------------
def _resolve_resources(
    increment: npt.NDArray[np.floating],
    normal_source: normal_sources.BaseNormalSource | None,
    workspace: workspaces.IntegralWorkspace | None,
) -> tuple[normal_sources.BaseNormalSource, workspaces.IntegralWorkspace]:
    """Provide defaults for normal source and workspace, check workspace dimension."""
    dimension = increment.shape[0]
    if normal_source is None:
        normal_source = normal_sources.NumpyNormalSource()
    if workspace is None:
        workspace = workspaces.IntegralWorkspace(dimension)
    else:
        workspace.check_dimension(dimension)
    return normal_source, workspace
