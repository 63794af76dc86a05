"""Stochastic integral objects for the diffusion portion of an SDE integrator.

This module wraps the functional interface of [`iterated_integrals`][pyiterint.iterated_integrals]
into objects suitable for being plugged into SDE integration schemes. The integral objects are
initialized with a seed for their intrinsic PRNG, and keep a private workspace that is reused over
all calls, so that repeated sampling for a fixed noise dimension does not reallocate the large
intermediate matrices.

!!! warning: Thread safety

    An integral object owns its random source and workspace. It must not be shared between
    concurrently running threads, create one object per thread instead.

Classes:
    `BaseStochasticIntegral`: Abstract base class for a common interface
    `IteratedItoIntegral`: Implementation of iterated Itô integrals
"""

# =================================== Imports and Configuration ====================================
from abc import ABC, abstractmethod
from numbers import Real
from typing import final

import numpy as np
from typeguard import typechecked

from pyiterint import algorithms, iterated_integrals, normal_sources, workspaces


# ================================ Stochastic Integral Base Class ==================================
class BaseStochasticIntegral(ABC):
    """Abstract base class for computing stochastic integrals.

    This class provides the interface and base functionality for all stochastic integral classes.
    It requires that they implement a `compute_double` method, computing iterated integrals for a
    given Wiener increment, as required by higher order integration schemes.

    Attributes:
        _normal_source (normal_sources.NumpyNormalSource): Source of standard normal samples.

    Methods:
        __init__(): Base class constructor.
        compute_double(): Interface for computing iterated stochastic integrals.
    """

    # ----------------------------------------------------------------------------------------------
    @typechecked
    def __init__(self, seed: int) -> None:
        """Initializes an instance of the BaseStochasticIntegral class.

        Basically initializes a numpy-backed normal source with the provided seed.

        This method employs run-time type checking.

        Args:
            seed (int): Seed for the random number generator.
        """
        self._normal_source = normal_sources.NumpyNormalSource(seed)

    # ----------------------------------------------------------------------------------------------
    @abstractmethod
    def compute_double(
        self, increment: np.ndarray, step_size: Real, tolerance: Real
    ) -> np.ndarray:
        """Interface for computing iterated stochastic integrals.

        Args:
            increment (numpy.ndarray): Wiener increment of shape (m,).
            step_size (Real): Step size.
            tolerance (Real): Admissible L2 error.

        Returns:
            numpy.ndarray: Iterated integrals of shape (m, m).
        """
        pass


# ===================================== Iterated Ito Integrals =====================================
@final
class IteratedItoIntegral(BaseStochasticIntegral):
    """Implementation for iterated Ito integrals."""

    # ----------------------------------------------------------------------------------------------
    @typechecked
    def __init__(
        self,
        seed: int,
        algorithm: algorithms.AlgorithmVariant = algorithms.DEFAULT_ALGORITHM,
    ) -> None:
        """Initializes the integral with a seed and the algorithm to use.

        This method employs run-time type checking.

        Args:
            seed (int): Seed for the random number generator.
            algorithm (algorithms.AlgorithmVariant, optional): Algorithm for noise dimensions
                larger than one. Defaults to `DEFAULT_ALGORITHM`.
        """
        super().__init__(seed)
        self._algorithm = algorithm
        self._workspace = None

    # ----------------------------------------------------------------------------------------------
    @property
    def algorithm(self) -> algorithms.AlgorithmVariant:
        """Algorithm used for sampling."""
        return self._algorithm

    # ----------------------------------------------------------------------------------------------
    def compute_double(
        self, increment: np.ndarray, step_size: Real, tolerance: Real
    ) -> np.ndarray:
        """Computes the iterated Ito integrals for the given increment and step size.

        The private workspace is (re)allocated whenever the noise dimension changes. The returned
        matrix is a copy, and does not alias the workspace.

        Args:
            increment (np.ndarray): Wiener increment of shape (m,).
            step_size (Real): The step size of the increment.
            tolerance (Real): Admissible L2 error of the approximation.

        Returns:
            np.ndarray: Iterated Ito integrals of shape (m, m).
        """
        workspace = self._get_workspace(increment)
        integral_matrix = iterated_integrals.simulate(
            increment,
            step_size,
            tolerance,
            self._algorithm,
            ito_correction=True,
            normal_source=self._normal_source,
            workspace=workspace,
        )
        return integral_matrix.copy()

    # ----------------------------------------------------------------------------------------------
    def compute_double_batch(
        self,
        increments: np.ndarray,
        step_size: Real,
        tolerance: Real,
        show_progressbar: bool = False,
    ) -> np.ndarray:
        """Computes the iterated Ito integrals for an ensemble of increments.

        The RNG process is looped over the different trajectories.

        Args:
            increments (np.ndarray): Wiener increments of shape (m, N).
            step_size (Real): The step size of the increments.
            tolerance (Real): Admissible L2 error of the approximation.
            show_progressbar (bool, optional): Whether to show a progress bar. Defaults to False.

        Returns:
            np.ndarray: Iterated Ito integrals of shape (m, m, N).
        """
        workspace = self._get_workspace(increments)
        return iterated_integrals.simulate_batch(
            increments,
            step_size,
            tolerance,
            self._algorithm,
            ito_correction=True,
            normal_source=self._normal_source,
            workspace=workspace,
            progress_bar=show_progressbar,
        )

    # ----------------------------------------------------------------------------------------------
    def _get_workspace(self, increment: np.ndarray) -> workspaces.IntegralWorkspace | None:
        """Return the private workspace, reallocated if the noise dimension has changed.

        Malformed increments get no workspace, they are rejected by the simulation routines.
        """
        if increment.ndim not in (1, 2) or increment.shape[0] == 0:
            return None
        dimension = increment.shape[0]
        if self._workspace is None or self._workspace.dimension != dimension:
            self._workspace = workspaces.IntegralWorkspace(dimension)
        return self._workspace
