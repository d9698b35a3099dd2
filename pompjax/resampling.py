# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Particle resampling schemes.

All public resamplers share the signature
``(rng_key, weights, num_samples) -> indices`` where *weights* are
**normalized** (i.e. sum to one), the same convention used by
Blackjax (``blackjax.smc.resampling``).  Residual resampling is taken
from Blackjax directly.
"""

from collections.abc import Callable

import jax
import jax.numpy as jnp
from blackjax.smc.resampling import residual
from jaxtyping import Array, Float, Int

from pompjax.types import PRNGKeyT, Scalar


def systematic(
    rng_key: PRNGKeyT,
    weights: Float[Array, " num_particles"],
    num_samples: int,
) -> Int[Array, " num_samples"]:
    """Systematic resampling.

    A single uniform draw ``u`` offsets ``num_samples`` evenly spaced
    marks; see :func:`systematic_indices`.

    Args:
        rng_key: JAX PRNG key.
        weights: Normalized importance weights (sum to 1).
        num_samples: Number of indices to draw.

    Returns:
        Resampled ancestor indices, in non-decreasing order.
    """
    u = jax.random.uniform(rng_key, ())
    return systematic_indices(u, weights, num_samples)


def systematic_indices(
    u: Scalar,
    weights: Float[Array, " num_particles"],
    num_samples: int,
) -> Int[Array, " num_samples"]:
    r"""Deterministic part of systematic resampling.

    Index ``i`` of the output is the first particle whose cumulative
    weight reaches the mark :math:`(i + u) / M`.  Every particle is thus
    copied either :math:`\lfloor M w_j \rfloor` or
    :math:`\lceil M w_j \rceil` times.

    Args:
        u: Offset in ``[0, 1)``.
        weights: Normalized importance weights (sum to 1).
        num_samples: Number of indices :math:`M` to produce.

    Returns:
        Ancestor indices.
    """
    n = weights.shape[0]
    cumsum = jnp.cumsum(weights)
    marks = (jnp.arange(num_samples, dtype=weights.dtype) + u) / num_samples
    idx = jnp.searchsorted(cumsum, marks)
    # Rounding can leave cumsum[-1] slightly below the last mark.
    return jnp.clip(idx, 0, n - 1)


def stratified(
    rng_key: PRNGKeyT,
    weights: Float[Array, " num_particles"],
    num_samples: int,
) -> Int[Array, " num_samples"]:
    """Stratified resampling: one independent uniform per stratum.

    Args:
        rng_key: JAX PRNG key.
        weights: Normalized importance weights (sum to 1).
        num_samples: Number of indices to draw.

    Returns:
        Resampled ancestor indices.
    """
    n = weights.shape[0]
    u = jax.random.uniform(rng_key, (num_samples,))
    marks = (jnp.arange(num_samples, dtype=weights.dtype) + u) / num_samples
    idx = jnp.searchsorted(jnp.cumsum(weights), marks)
    return jnp.clip(idx, 0, n - 1)


def multinomial(
    rng_key: PRNGKeyT,
    weights: Float[Array, " num_particles"],
    num_samples: int,
) -> Int[Array, " num_samples"]:
    """Multinomial resampling.

    Higher variance than systematic/stratified; useful as a reference.

    Args:
        rng_key: JAX PRNG key.
        weights: Normalized importance weights (sum to 1).
        num_samples: Number of indices to draw.

    Returns:
        Resampled ancestor indices.
    """
    n = weights.shape[0]
    marks = _sorted_uniforms(rng_key, num_samples)
    idx = jnp.searchsorted(jnp.cumsum(weights), marks)
    return jnp.clip(idx, 0, n - 1)


RESAMPLERS: dict[str, Callable] = {
    'systematic': systematic,
    'stratified': stratified,
    'multinomial': multinomial,
    'residual': residual,
}


def get_resampler(name: str) -> Callable:
    """Look up a resampling scheme by name.

    Raises:
        ValueError: If *name* is not one of :data:`RESAMPLERS`.
    """
    try:
        return RESAMPLERS[name]
    except KeyError:
        raise ValueError(
            f'unknown resampler {name!r}; choose from {sorted(RESAMPLERS)}'
        ) from None


def _sorted_uniforms(
    rng_key: PRNGKeyT,
    n: int,
) -> Float[Array, " n"]:
    """Generate *n* sorted uniform random variates in [0, 1).

    Uses the exponential spacings trick (credit: Nicolas Chopin).
    """
    us = jax.random.uniform(rng_key, (n + 1,))
    z = jnp.cumsum(-jnp.log(us))
    return z[:-1] / z[-1]
