# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Iterated filtering (IF2; Ionides *et al.*, 2015).

IF2 turns the particle filter into a maximum-likelihood optimiser.  Each
particle carries its own copy of the parameters on the estimation scale.
Every iteration is one filtering pass in which:

1. all parameters are perturbed once before the initial state is drawn
   (this is the only perturbation of initial-value parameters),
2. the remaining parameters are perturbed again before each
   observation,
3. resampling selects states *and* parameters together, so parameter
   values that explain the data well are the ones carried forward.

The random-walk sd shrinks with the geometric schedule of
:func:`~pompjax.random_walk.cooling_factor`.  The parameter swarm is
carried over from one iteration to the next; its weighted mean is the
running estimate.

The outer loop over iterations is a :func:`jax.lax.scan` wrapping the
scan of :func:`~pompjax.pfilter.filter_pass`.
"""

import logging
from collections.abc import Callable, Mapping

import jax.numpy as jnp
import jax.random as jr
import numpy as np
from jax import lax
from jaxtyping import Array, Float

from pompjax.containers import MifPosterior
from pompjax.errors import FilterFailureError
from pompjax.model import PompModel
from pompjax.pfilter import check_filter_inputs, filter_pass
from pompjax.random_walk import RandomWalkSD, check_cooling, cooling_factor
from pompjax.resampling import systematic
from pompjax.transforms import ParameterTransform, identity_transform
from pompjax.types import PRNGKeyT

logger = logging.getLogger(__name__)


def iterated_filtering(
    key: PRNGKeyT,
    model: PompModel,
    ys: Float[Array, 'ntime ...'],
    theta: Mapping[str, float] | Float[Array, ' param_dim'],
    num_particles: int,
    num_iterations: int,
    rw_sd: RandomWalkSD,
    cooling_fraction: float = 0.5,
    cooling_reference: float = 50,
    transform: ParameterTransform | None = None,
    resampling_fn: Callable = systematic,
    resampling_threshold: float = 1.0,
    start_iteration: int = 0,
    raise_on_failure: bool = True,
) -> MifPosterior:
    r"""Run IF2 from a starting point.

    Args:
        key: JAX PRNG key.
        model: The POMP model.
        ys: Observations.
        theta: Natural-scale starting point, as a dict or array.
        num_particles: Number of particles :math:`N \ge 1`.
        num_iterations: Number of filtering passes :math:`M \ge 1`.
        rw_sd: Random-walk sds on the estimation scale.
        cooling_fraction: Fraction of the initial sd left after
            *cooling_reference* iterations.
        cooling_reference: Reference iteration count of the schedule.
        transform: Estimation-scale transforms; identity by default.
        resampling_fn: Resampling algorithm.
        resampling_threshold: ESS fraction triggering resampling.
        start_iteration: Iterations already performed, so a run can be
            continued from a previous estimate with the cooling schedule
            picking up where it stopped.
        raise_on_failure: Raise if any pass hits a filter failure.

    Returns:
        :class:`~pompjax.containers.MifPosterior`.

    Raises:
        ValueError: On invalid settings.
        DomainError: If *theta* lies outside the support of *transform*.
        FilterFailureError: If a pass failed and *raise_on_failure*.
    """
    check_filter_inputs(model, ys, num_particles)
    if num_iterations < 1:
        raise ValueError(f'num_iterations must be at least 1, got {num_iterations}')
    check_cooling(cooling_fraction, cooling_reference)
    if transform is None:
        transform = identity_transform(model.param_names)
    if tuple(transform.param_names) != tuple(model.param_names):
        raise ValueError('transform.param_names must match model.param_names')

    theta = model.coerce_theta(theta)
    transform.validate(theta)
    sd_step, sd_init = rw_sd.arrays(model.param_names)
    ntime = jnp.shape(model.times)[0]
    swarm_0 = jnp.broadcast_to(
        transform.to_estimation_scale(theta), (num_particles, model.param_dim)
    )

    def _iteration(swarm, args):
        it_key, m = args

        def _step_sd(n):
            cool = cooling_factor(
                m, cooling_fraction, cooling_reference, n, ntime
            )
            return jnp.where(n > 0, sd_step, 0.0) * cool

        post, swarm = filter_pass(
            it_key,
            model,
            ys,
            swarm,
            resampling_fn=resampling_fn,
            resampling_threshold=resampling_threshold,
            decode=transform.from_estimation_scale,
            init_sd=sd_init * cooling_factor(m, cooling_fraction, cooling_reference),
            step_sd=_step_sd,
        )
        center = jnp.exp(post.final_log_weights) @ swarm
        return swarm, (
            transform.from_estimation_scale(center),
            post.marginal_loglik,
            post.failure_step,
        )

    keys = jr.split(key, num_iterations)
    iterations = start_iteration + jnp.arange(num_iterations)
    final_swarm, (centers, logliks, failure_steps) = lax.scan(
        _iteration, swarm_0, (keys, iterations)
    )

    posterior = MifPosterior(
        theta=centers[-1],
        traces=jnp.concatenate([theta[None, :], centers], axis=0),
        logliks=logliks,
        failure_steps=failure_steps,
        final_params=transform.from_estimation_scale(final_swarm),
    )
    failed = np.flatnonzero(np.asarray(failure_steps) >= 0)
    if failed.size:
        first = int(failed[0])
        logger.warning(
            'IF2: %d of %d iterations hit a filter failure (first at '
            'iteration %d, observation %d)',
            failed.size,
            num_iterations,
            first,
            int(failure_steps[first]),
        )
        if raise_on_failure:
            raise FilterFailureError(int(failure_steps[first]), first)
    logger.debug(
        'IF2: %d iterations of %d particles, last in-pass loglik %.3f',
        num_iterations,
        num_particles,
        float(logliks[-1]),
    )
    return posterior


def mif_trace_records(
    model: PompModel,
    posterior: MifPosterior,
) -> list[dict[str, float]]:
    """Flatten IF2 traces into one record per iteration.

    Row ``0`` is the starting point and has a ``nan`` log-likelihood;
    row ``m`` holds the estimate after iteration ``m`` and that
    iteration's in-pass log-likelihood.
    """
    logliks = np.concatenate([[np.nan], np.asarray(posterior.logliks, dtype=float)])
    records = []
    for m, (loglik, row) in enumerate(zip(logliks, np.asarray(posterior.traces))):
        record = {'iteration': m, 'loglik': float(loglik)}
        record.update(model.theta_dict(row))
        records.append(record)
    return records
