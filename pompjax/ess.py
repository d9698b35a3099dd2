# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Effective sample size of a weighted swarm.

For weights :math:`w_i` (normalized or not),

.. math::

    \mathrm{ESS} = \frac{(\sum_i w_i)^2}{\sum_i w_i^2},

which lies between ``1`` (one particle holds all the weight) and ``N``
(uniform weights).  A swarm whose weights are all zero has ``ESS = 0``;
the particle filter reports this at failed steps.  For any other input
the value agrees with ``blackjax.smc.ess``.
"""

import jax.numpy as jnp
from jax.scipy.special import logsumexp
from jaxtyping import Array, Float

from pompjax.types import Scalar


def log_ess(log_weights: Float[Array, ' num_particles']) -> Scalar:
    """Log of :func:`ess`; ``-inf`` when every weight is zero."""
    lse = logsumexp(log_weights)
    dead = lse == -jnp.inf
    # Substitute zeros so a dead swarm does not produce -inf - -inf.
    safe = jnp.where(dead, 0.0, log_weights)
    value = 2 * logsumexp(safe) - logsumexp(2 * safe)
    return jnp.where(dead, -jnp.inf, value)


def ess(log_weights: Float[Array, ' num_particles']) -> Scalar:
    """Effective sample size from log weights.

    Args:
        log_weights: Log importance weights, normalized or not.

    Returns:
        Scalar ESS in ``[1, N]``, or ``0`` if all weights are zero.
    """
    return jnp.exp(log_ess(log_weights))
