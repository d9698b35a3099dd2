# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Log-space weight utilities.

Particle weights are kept on the log scale throughout; a weight of zero
is a log weight of ``-inf``.
"""

import jax.numpy as jnp
from jax.scipy.special import logsumexp
from jaxtyping import Array, Bool, Float

from pompjax.types import Scalar


def sanitize_log_weights(
    log_weights: Float[Array, ' num_particles'],
) -> Float[Array, ' num_particles']:
    """Map non-finite log weights other than ``-inf`` to ``-inf``.

    A ``nan`` or ``+inf`` log density means the model was evaluated in an
    invalid state; such a particle carries no weight.
    """
    bad = jnp.isnan(log_weights) | (log_weights == jnp.inf)
    return jnp.where(bad, -jnp.inf, log_weights)


def all_zero(log_weights: Float[Array, ' num_particles']) -> Bool[Array, '']:
    """Whether every weight is exactly zero (every log weight ``-inf``)."""
    return jnp.all(log_weights == -jnp.inf)


def log_normalize(
    log_weights: Float[Array, ' num_particles'],
) -> tuple[Float[Array, ' num_particles'], Scalar]:
    """Shift log weights so the weights sum to one.

    Args:
        log_weights: Log weights up to an additive constant.

    Returns:
        ``(log_normalized, log_total)`` with
        ``log_total = logsumexp(log_weights)``.  Meaningless when every
        weight is zero; check :func:`all_zero` first.
    """
    log_total = logsumexp(log_weights)
    return log_weights - log_total, log_total


def normalize(
    log_weights: Float[Array, ' num_particles'],
) -> Float[Array, ' num_particles']:
    """Normalized weights on the natural scale."""
    log_norm, _ = log_normalize(log_weights)
    return jnp.exp(log_norm)
