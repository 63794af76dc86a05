# ==================================================================================================
# Run with:
# python compare_algorithms.py
# ==================================================================================================


import time

import numpy as np

from pyiterint import algorithms, iterated_integrals, stochastic_integrals


# ==================================================================================================
# Step size and L2 tolerance of order h^(3/2), as required by strong order 1 schemes
step_size = 2**-7
tolerance = step_size**1.5
noise_dimensions = [2, 5, 10, 50]
num_steps = 200

rng = np.random.default_rng(seed=0)


# Compare number of terms and runtime of both algorithms for increasing noise dimension
for noise_dim in noise_dimensions:
    increments = np.sqrt(step_size) * rng.standard_normal((noise_dim, num_steps))
    for variant in algorithms.AlgorithmVariant:
        num_terms = [
            iterated_integrals.terms_needed(increments[:, i], step_size, tolerance, variant)
            for i in range(num_steps)
        ]
        ito_integral = stochastic_integrals.IteratedItoIntegral(seed=0, algorithm=variant)
        start_time = time.perf_counter()
        ito_integral.compute_double_batch(increments, step_size, tolerance)
        elapsed_time = time.perf_counter() - start_time
        print(
            f"m = {noise_dim:3d} | {variant.value:10s} | mean terms: {np.mean(num_terms):8.1f} | "
            f"time per step: {1e3 * elapsed_time / num_steps:.3f} ms"
        )
