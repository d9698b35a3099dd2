# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Replicated likelihood evaluation.

A particle filter gives an unbiased estimate of the *likelihood*, not of
the log-likelihood.  Replicate estimates :math:`\ell_1, \dots, \ell_R` are
therefore combined on the natural scale,

.. math::

    \hat\ell = \log \frac{1}{R} \sum_r e^{\ell_r},

and the Monte Carlo standard error of :math:`\hat\ell` is estimated by the
jackknife:

.. math::

    \mathrm{se} = \sqrt{\frac{R - 1}{R}
        \sum_k \bigl(\hat\ell_{(-k)} - \bar\ell_{(\cdot)}\bigr)^2}

where :math:`\hat\ell_{(-k)}` is the estimate with replicate :math:`k`
left out.
"""

import logging
from collections.abc import Callable, Mapping

import jax.numpy as jnp
import jax.random as jr
from jax import vmap
from jaxtyping import Array, Bool, Float

from pompjax.containers import LikelihoodEstimate
from pompjax.model import PompModel
from pompjax.pfilter import check_filter_inputs, particle_filter
from pompjax.resampling import systematic
from pompjax.types import PRNGKeyT, Scalar

logger = logging.getLogger(__name__)


def logmeanexp(
    x: Float[Array, ' n'],
    ignore_nan: bool = False,
) -> Scalar:
    """Numerically stable ``log(mean(exp(x)))``.

    The maximum is subtracted before exponentiating, so ``n`` copies of the
    same value return that value exactly.

    Args:
        x: Log-scale values, e.g. replicate log-likelihoods.
        ignore_nan: Drop ``nan`` entries first.

    Returns:
        Scalar; ``-inf`` if every entry is ``-inf``.
    """
    x = _prepare(x, ignore_nan)
    return _masked_logmeanexp(x, jnp.ones(x.shape, dtype=bool))


def logmeanexp_se(
    x: Float[Array, ' n'],
    ignore_nan: bool = False,
) -> Scalar:
    """Jackknife standard error of :func:`logmeanexp`.

    Args:
        x: Log-scale values.
        ignore_nan: Drop ``nan`` entries first.

    Returns:
        Scalar standard error; ``nan`` for fewer than two values and
        ``inf`` when fewer than two values are finite, since some
        leave-one-out estimate is then ``-inf``.
    """
    x = _prepare(x, ignore_nan)
    n = x.shape[0]
    if n < 2:
        return jnp.asarray(jnp.nan)
    leave_one_out = ~jnp.eye(n, dtype=bool)
    jk = vmap(_masked_logmeanexp, in_axes=(None, 0))(x, leave_one_out)
    unbounded = jnp.any(jk == -jnp.inf)
    jk = jnp.where(unbounded, 0.0, jk)
    # Shift by the first entry so identical inputs give exactly zero.
    dev = jk - jk[0]
    dev = dev - jnp.mean(dev)
    se = jnp.sqrt((n - 1) / n * jnp.sum(dev**2))
    return jnp.where(unbounded, jnp.inf, se)


def replicate_pfilter(
    key: PRNGKeyT,
    model: PompModel,
    ys: Float[Array, 'ntime ...'],
    theta: Mapping[str, float] | Float[Array, ' param_dim'],
    num_particles: int,
    num_replicates: int,
    resampling_fn: Callable = systematic,
    resampling_threshold: float = 1.0,
) -> LikelihoodEstimate:
    r"""Estimate the log-likelihood from independent particle filters.

    Each replicate gets its own key from ``jax.random.split`` and the
    replicates are evaluated together under ``vmap``.  A replicate that
    hits a filter failure contributes ``-inf``; the combined estimate
    still uses the remaining replicates.

    Args:
        key: Master PRNG key.
        model: The POMP model.
        ys: Observations.
        theta: Natural-scale parameters, as a dict or array.
        num_particles: Particles per replicate.
        num_replicates: Number of independent filters :math:`R \ge 1`.
        resampling_fn: Resampling algorithm.
        resampling_threshold: ESS fraction triggering resampling.

    Returns:
        :class:`~pompjax.containers.LikelihoodEstimate`.
    """
    if num_replicates < 1:
        raise ValueError(f'num_replicates must be at least 1, got {num_replicates}')
    check_filter_inputs(model, ys, num_particles)
    theta = model.coerce_theta(theta)

    def _one(k: PRNGKeyT):
        post = particle_filter(
            k,
            model,
            ys,
            theta,
            num_particles,
            resampling_fn=resampling_fn,
            resampling_threshold=resampling_threshold,
        )
        return post.marginal_loglik, post.failure_step

    keys = jr.split(key, num_replicates)
    logliks, failure_steps = vmap(_one)(keys)
    num_failed = int(jnp.sum(failure_steps >= 0))
    if num_failed:
        logger.warning(
            '%d of %d particle filter replicates failed', num_failed, num_replicates
        )
    estimate = LikelihoodEstimate(
        loglik=logmeanexp(logliks),
        loglik_se=logmeanexp_se(logliks),
        logliks=logliks,
        num_failed=num_failed,
    )
    logger.debug(
        'loglik %.3f (se %.3f) from %d replicates of %d particles',
        float(estimate.loglik),
        float(estimate.loglik_se),
        num_replicates,
        num_particles,
    )
    return estimate


def _prepare(x: Float[Array, ' n'], ignore_nan: bool) -> Float[Array, ' n']:
    x = jnp.ravel(jnp.asarray(x, dtype=float))
    if ignore_nan:
        x = x[~jnp.isnan(x)]
    if x.shape[0] == 0:
        raise ValueError('logmeanexp needs at least one value')
    return x


def _masked_logmeanexp(
    x: Float[Array, ' n'],
    mask: Bool[Array, ' n'],
) -> Scalar:
    x = jnp.where(mask, x, -jnp.inf)
    m = jnp.max(x)
    safe_m = jnp.where(jnp.isfinite(m), m, 0.0)
    total = jnp.sum(jnp.where(mask, jnp.exp(x - safe_m), 0.0))
    lme = safe_m + jnp.log(total / jnp.sum(mask))
    return jnp.where(jnp.isfinite(m), lme, m)
