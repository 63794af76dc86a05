# =================================== Imports and Configuration ====================================
import numpy as np
import pytest

from pyiterint import algorithms, exceptions, iterated_integrals, normal_sources, workspaces

ALGORITHM_VARIANTS = [algorithms.AlgorithmVariant.MILSTEIN, algorithms.AlgorithmVariant.WIKTORSSON]


# ===================================== Module-Level Fixtures ======================================
class FailingNormalSource(normal_sources.BaseNormalSource):
    def next_standard_normal(self):
        raise AssertionError("Scalar increments must not consume random numbers.")


# --------------------------------------------------------------------------------------------------
@pytest.fixture(params=ALGORITHM_VARIANTS, scope="module")
def algorithm(request):
    return request.param


# --------------------------------------------------------------------------------------------------
@pytest.fixture(params=[(2, 0.5), (3, 0.01), (10, 1 / 128)], scope="module")
def increment_and_step(request):
    dimension, step_size = request.param
    rng = np.random.default_rng(dimension)
    increment = np.sqrt(step_size) * rng.standard_normal(dimension)
    return increment, step_size


# =================================== Tests for Number of Terms ====================================
class TestTermsNeeded:
    # ----------------------------------------------------------------------------------------------
    @pytest.mark.parametrize("dimension", [1, 2, 10])
    def test_milstein_reference_value(self, dimension):
        step_size = 1 / 128
        increment = np.sqrt(step_size) * np.random.default_rng(0).standard_normal(dimension)
        num_terms = iterated_integrals.terms_needed(
            increment, step_size, step_size**1.5, algorithms.AlgorithmVariant.MILSTEIN
        )
        assert num_terms == 7

    # ----------------------------------------------------------------------------------------------
    def test_monotone_in_tolerance(self, increment_and_step, algorithm):
        increment, step_size = increment_and_step
        tolerances = np.geomspace(1e-4, 1, 25)
        num_terms = [
            iterated_integrals.terms_needed(increment, step_size, tolerance, algorithm)
            for tolerance in tolerances
        ]
        assert all(later <= earlier for earlier, later in zip(num_terms, num_terms[1:]))

    # ----------------------------------------------------------------------------------------------
    @pytest.mark.parametrize("step_size, tolerance", [(0, 0.1), (-0.5, 0.1), (0.5, 0), (0.5, -1)])
    def test_invalid_parameters(self, algorithm, step_size, tolerance):
        with pytest.raises(exceptions.InvalidParameterError):
            iterated_integrals.terms_needed(np.ones(2), step_size, tolerance, algorithm)

    # ----------------------------------------------------------------------------------------------
    @pytest.mark.parametrize("increment", [np.ones((2, 2)), np.ones(0)])
    def test_invalid_increment(self, algorithm, increment):
        with pytest.raises(exceptions.ShapeError):
            iterated_integrals.terms_needed(increment, 0.5, 0.1, algorithm)

    # ----------------------------------------------------------------------------------------------
    def test_numeric_domain(self):
        with pytest.raises(exceptions.NumericDomainError):
            iterated_integrals.terms_needed(
                np.array([np.nan, 1.0]), 0.5, 0.1, algorithms.AlgorithmVariant.WIKTORSSON
            )
        with pytest.raises(exceptions.NumericDomainError):
            iterated_integrals.terms_needed(
                np.ones(2), 1.0, 1e-300, algorithms.AlgorithmVariant.MILSTEIN
            )


# ===================================== Tests for Raw Sampling =====================================
class TestSampleRaw:
    # ----------------------------------------------------------------------------------------------
    def test_decomposition_identity(self, algorithm):
        unit_increment = np.array([0.3, -1.2, 2.0, 0.7])
        source = normal_sources.NumpyNormalSource(0)
        raw_integrals = iterated_integrals.sample_raw(unit_increment, 12, algorithm, source)
        off_diagonal = ~np.eye(4, dtype=bool)
        symmetric_sum = raw_integrals + raw_integrals.T
        expected_sum = np.outer(unit_increment, unit_increment)
        assert np.allclose(symmetric_sum[off_diagonal], expected_sum[off_diagonal])
        assert np.allclose(np.diag(raw_integrals), 0.5 * unit_increment**2)

    # ----------------------------------------------------------------------------------------------
    def test_negative_number_of_terms(self, algorithm):
        with pytest.raises(exceptions.InvalidParameterError):
            iterated_integrals.sample_raw(np.ones(2), -1, algorithm)

    # ----------------------------------------------------------------------------------------------
    def test_workspace_dimension_mismatch(self, algorithm):
        workspace = workspaces.IntegralWorkspace(3)
        with pytest.raises(exceptions.ShapeError):
            iterated_integrals.sample_raw(np.ones(2), 5, algorithm, workspace=workspace)


# ===================================== Tests for Simulation =======================================
class TestSimulate:
    # ----------------------------------------------------------------------------------------------
    def test_decomposition_identity(self, increment_and_step, algorithm):
        increment, step_size = increment_and_step
        source = normal_sources.NumpyNormalSource(1)
        for ito_correction in (False, True):
            integrals = iterated_integrals.simulate(
                increment, step_size, step_size**1.5, algorithm, ito_correction, source
            )
            off_diagonal = ~np.eye(increment.shape[0], dtype=bool)
            symmetric_sum = integrals + integrals.T
            expected_sum = np.outer(increment, increment)
            assert integrals.shape == (increment.shape[0], increment.shape[0])
            assert np.allclose(symmetric_sum[off_diagonal], expected_sum[off_diagonal])

    # ----------------------------------------------------------------------------------------------
    def test_ito_diagonal(self, increment_and_step, algorithm):
        increment, step_size = increment_and_step
        integrals = iterated_integrals.simulate(increment, step_size, step_size**1.5, algorithm)
        assert np.allclose(np.diag(integrals), 0.5 * increment**2 - 0.5 * step_size)

    # ----------------------------------------------------------------------------------------------
    def test_reference_scenario(self, algorithm):
        step_size = 0.5
        increment = np.array([1.0, 0.5])
        integrals = iterated_integrals.simulate(increment, step_size, step_size**1.5, algorithm)
        assert np.allclose(np.diag(integrals), 0.5 * increment**2 - 0.5 * step_size)
        assert np.allclose(np.diag(integrals), [0.25, -0.125])

    # ----------------------------------------------------------------------------------------------
    @pytest.mark.parametrize("increment, step_size", [(0.0, 1.0), (1.3, 0.5), (-0.2, 1e-3)])
    def test_scalar_closed_form(self, algorithm, increment, step_size):
        integrals = iterated_integrals.simulate(
            np.array([increment]), step_size, 1e-6, algorithm, normal_source=FailingNormalSource()
        )
        assert integrals.shape == (1, 1)
        assert integrals[0, 0] == iterated_integrals.simulate_scalar(increment, step_size)
        assert integrals[0, 0] == 0.5 * increment**2 - 0.5 * step_size

    # ----------------------------------------------------------------------------------------------
    def test_scalar_without_correction(self):
        integrals = iterated_integrals.simulate(np.array([0.8]), 0.5, 0.1, ito_correction=False)
        assert integrals[0, 0] == 0.5 * 0.8**2

    # ----------------------------------------------------------------------------------------------
    def test_reproducible_with_seed(self, increment_and_step, algorithm):
        increment, step_size = increment_and_step
        first_integrals = iterated_integrals.simulate(
            increment, step_size, 0.01, algorithm, normal_source=normal_sources.NumpyNormalSource(5)
        )
        second_integrals = iterated_integrals.simulate(
            increment, step_size, 0.01, algorithm, normal_source=normal_sources.NumpyNormalSource(5)
        )
        assert np.array_equal(first_integrals, second_integrals)

    # ----------------------------------------------------------------------------------------------
    def test_workspace_reuse(self, increment_and_step, algorithm):
        increment, step_size = increment_and_step
        workspace = workspaces.IntegralWorkspace(increment.shape[0])
        for seed in (3, 4):
            fresh_integrals = iterated_integrals.simulate(
                increment,
                step_size,
                0.05,
                algorithm,
                normal_source=normal_sources.NumpyNormalSource(seed),
            )
            reused_integrals = iterated_integrals.simulate(
                increment,
                step_size,
                0.05,
                algorithm,
                normal_source=normal_sources.NumpyNormalSource(seed),
                workspace=workspace,
            )
            assert reused_integrals is workspace.result
            assert np.allclose(fresh_integrals, reused_integrals)

    # ----------------------------------------------------------------------------------------------
    @pytest.mark.parametrize("increment", [np.array([0.7]), np.array([0.7, -0.2])])
    def test_workspace_dimension_mismatch(self, algorithm, increment):
        workspace = workspaces.IntegralWorkspace(3)
        with pytest.raises(exceptions.ShapeError):
            iterated_integrals.simulate(increment, 0.5, 0.1, algorithm, workspace=workspace)

    # ----------------------------------------------------------------------------------------------
    def test_scalar_accepts_matching_workspace(self, algorithm):
        workspace = workspaces.IntegralWorkspace(1)
        integrals = iterated_integrals.simulate(
            np.array([0.7]), 0.5, 0.1, algorithm, workspace=workspace
        )
        assert integrals[0, 0] == pytest.approx(0.5 * 0.7**2 - 0.25)

    # ----------------------------------------------------------------------------------------------
    def test_workspace_in_use(self, algorithm):
        workspace = workspaces.IntegralWorkspace(2)
        with workspace, pytest.raises(exceptions.WorkspaceInUseError):
            iterated_integrals.simulate(np.ones(2), 0.5, 0.1, algorithm, workspace=workspace)

    # ----------------------------------------------------------------------------------------------
    @pytest.mark.parametrize("step_size, tolerance", [(0, 0.1), (-1.0, 0.1), (0.5, 0.0)])
    def test_invalid_parameters(self, step_size, tolerance):
        with pytest.raises(exceptions.InvalidParameterError):
            iterated_integrals.simulate(np.ones(2), step_size, tolerance)
        with pytest.raises(exceptions.InvalidParameterError):
            iterated_integrals.simulate(np.ones(1), step_size, tolerance)

    # ----------------------------------------------------------------------------------------------
    @pytest.mark.parametrize("increment", [np.ones(0), np.ones((2, 1))])
    def test_invalid_increment(self, increment):
        with pytest.raises(exceptions.ShapeError):
            iterated_integrals.simulate(increment, 0.5, 0.1)


# ==================================== Tests for Scalar Case =======================================
class TestSimulateScalar:
    # ----------------------------------------------------------------------------------------------
    @pytest.mark.parametrize(
        "increment, step_size, expected_value", [(1.0, 1.0, 0.0), (2.0, 0.5, 1.75), (0, 2, -1.0)]
    )
    def test_closed_form(self, increment, step_size, expected_value):
        assert iterated_integrals.simulate_scalar(increment, step_size) == expected_value

    # ----------------------------------------------------------------------------------------------
    def test_default_step_size(self):
        assert iterated_integrals.simulate_scalar(3.0) == 4.0

    # ----------------------------------------------------------------------------------------------
    @pytest.mark.parametrize("step_size", [0, -0.1])
    def test_invalid_step_size(self, step_size):
        with pytest.raises(exceptions.InvalidParameterError):
            iterated_integrals.simulate_scalar(1.0, step_size)


# ===================================== Tests for Batch Sampling ===================================
class TestSimulateBatch:
    # ----------------------------------------------------------------------------------------------
    def test_shape_and_diagonal(self, algorithm):
        step_size = 0.1
        increments = np.sqrt(step_size) * np.random.default_rng(0).standard_normal((3, 20))
        integrals = iterated_integrals.simulate_batch(
            increments,
            step_size,
            0.01,
            algorithm,
            normal_source=normal_sources.NumpyNormalSource(0),
        )
        assert integrals.shape == (3, 3, 20)
        for i in range(20):
            assert np.allclose(np.diag(integrals[:, :, i]), 0.5 * increments[:, i] ** 2 - 0.05)

    # ----------------------------------------------------------------------------------------------
    def test_matches_sequential_simulation(self, algorithm):
        step_size = 0.25
        increments = np.sqrt(step_size) * np.random.default_rng(1).standard_normal((2, 5))
        batch_integrals = iterated_integrals.simulate_batch(
            increments,
            step_size,
            0.05,
            algorithm,
            normal_source=normal_sources.NumpyNormalSource(9),
        )
        source = normal_sources.NumpyNormalSource(9)
        for i in range(5):
            single_integrals = iterated_integrals.simulate(
                increments[:, i], step_size, 0.05, algorithm, normal_source=source
            )
            assert np.allclose(batch_integrals[:, :, i], single_integrals)

    # ----------------------------------------------------------------------------------------------
    @pytest.mark.parametrize("ito_correction", [True, False])
    def test_scalar_batch(self, ito_correction):
        increments = np.array([[0.1, -0.4, 1.0]])
        integrals = iterated_integrals.simulate_batch(
            increments, 0.5, 0.1, ito_correction=ito_correction
        )
        expected_integrals = 0.5 * increments**2 - (0.25 if ito_correction else 0.0)
        assert integrals.shape == (1, 1, 3)
        assert np.allclose(integrals[0, 0], expected_integrals[0])

    # ----------------------------------------------------------------------------------------------
    @pytest.mark.parametrize("increments", [np.ones(3), np.ones((0, 4)), np.ones((2, 2, 2))])
    def test_invalid_increments(self, increments):
        with pytest.raises(exceptions.ShapeError):
            iterated_integrals.simulate_batch(increments, 0.5, 0.1)

    # ----------------------------------------------------------------------------------------------
    def test_scalar_batch_workspace_dimension_mismatch(self):
        workspace = workspaces.IntegralWorkspace(2)
        with pytest.raises(exceptions.ShapeError):
            iterated_integrals.simulate_batch(np.ones((1, 4)), 0.5, 0.1, workspace=workspace)


# =================================== Statistical Properties =======================================
class TestStatistics:
    num_samples = 10000

    # ----------------------------------------------------------------------------------------------
    def _sample_levy_areas(self, increment, step_size, tolerance, algorithm):
        increments = np.tile(increment[:, None], (1, self.num_samples))
        integrals = iterated_integrals.simulate_batch(
            increments,
            step_size,
            tolerance,
            algorithm,
            normal_source=normal_sources.NumpyNormalSource(2024),
        )
        levy_areas = 0.5 * (integrals[0, 1, :] - integrals[1, 0, :])
        return integrals, levy_areas

    # ----------------------------------------------------------------------------------------------
    @pytest.mark.parametrize(
        "algorithm, tolerance",
        [
            (algorithms.AlgorithmVariant.MILSTEIN, 0.01),
            (algorithms.AlgorithmVariant.WIKTORSSON, 0.002),
        ],
    )
    def test_levy_area_moments(self, algorithm, tolerance):
        step_size = 0.5
        increment = np.array([1.0, 0.5])
        integrals, levy_areas = self._sample_levy_areas(increment, step_size, tolerance, algorithm)
        expected_variance = step_size**2 * (1 + increment @ increment / step_size) / 12
        mean_diagonal = np.mean(np.diagonal(integrals, axis1=0, axis2=1), axis=0)
        assert np.allclose(mean_diagonal, [0.25, -0.125])
        assert abs(np.mean(levy_areas)) < 0.02
        assert np.var(levy_areas) == pytest.approx(expected_variance, rel=0.1)

    # ----------------------------------------------------------------------------------------------
    def test_wiktorsson_tail_variance_with_few_terms(self):
        increment = np.zeros(2)
        algorithm = algorithms.AlgorithmVariant.WIKTORSSON
        assert iterated_integrals.terms_needed(increment, 1.0, 0.1, algorithm) == 2
        _, levy_areas = self._sample_levy_areas(increment, 1.0, 0.1, algorithm)
        assert abs(np.mean(levy_areas)) < 0.02
        assert np.var(levy_areas) == pytest.approx(1 / 12, rel=0.1)
