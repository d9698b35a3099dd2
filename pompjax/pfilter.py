# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Bootstrap particle filter for POMP models.

At each observation time :math:`t_n` the filter:

1. **Resets** accumulator variables and **propagates** every particle
   from :math:`t_{n-1}` to :math:`t_n` through the process model.
2. **Weights** particles by the measurement density
   :math:`f(y_n \mid x_n^i)`, evaluated on the log scale.
3. Adds the conditional log-likelihood

   .. math::

       \log \hat p(y_n \mid y_{1:n-1})
           = \log \sum_i \tilde w_{n-1}^i f(y_n \mid x_n^i)

   which, after resampling, is the log-mean-exp of the log weights.
4. **Resamples** (systematic by default) when
   :math:`\mathrm{ESS} \le \tau N`.

If every weight is zero at some step the filter has failed: that step
contributes :math:`-\infty`, the index is recorded, and the swarm is
carried on with uniform weights so the scan completes.

The time loop is a :func:`jax.lax.scan`; per-particle work is
``vmap``-ped.
"""

from collections.abc import Callable, Mapping

import jax.numpy as jnp
import jax.random as jr
from jax import lax, vmap
from jaxtyping import Array, Float

from pompjax.containers import PfilterPosterior
from pompjax.errors import FilterFailureError
from pompjax.ess import ess as compute_ess
from pompjax.model import PompModel
from pompjax.random_walk import perturb
from pompjax.resampling import systematic
from pompjax.types import PRNGKeyT
from pompjax.weights import all_zero, log_normalize, sanitize_log_weights


def particle_filter(
    key: PRNGKeyT,
    model: PompModel,
    ys: Float[Array, 'ntime ...'],
    theta: Mapping[str, float] | Float[Array, ' param_dim'],
    num_particles: int,
    resampling_fn: Callable = systematic,
    resampling_threshold: float = 1.0,
) -> PfilterPosterior:
    r"""Run a bootstrap particle filter at fixed parameters.

    Args:
        key: JAX PRNG key.
        model: The POMP model.
        ys: Observations, one row per entry of ``model.times``.
        theta: Natural-scale parameters, as a dict or an array in
            ``model.param_names`` order.
        num_particles: Number of particles :math:`N \ge 1`.
        resampling_fn: Resampling algorithm with the Blackjax signature
            ``(key, weights, num_samples) -> indices``.
        resampling_threshold: Resample when
            ``ESS <= resampling_threshold * num_particles``.  The default
            ``1.0`` resamples at every step.

    Returns:
        :class:`~pompjax.containers.PfilterPosterior` with the
        log-likelihood estimate, conditional log-likelihood and ESS
        traces, filter means and the final swarm.
    """
    check_filter_inputs(model, ys, num_particles)
    theta = model.coerce_theta(theta)
    params = jnp.broadcast_to(theta, (num_particles, model.param_dim))
    posterior, _ = filter_pass(
        key,
        model,
        ys,
        params,
        resampling_fn=resampling_fn,
        resampling_threshold=resampling_threshold,
    )
    return posterior


def check_filter_inputs(
    model: PompModel,
    ys: Float[Array, 'ntime ...'],
    num_particles: int,
) -> None:
    """Validate filter arguments before tracing.

    Raises:
        ValueError: If ``num_particles < 1`` or *ys* does not have one
            row per observation time.
    """
    if num_particles < 1:
        raise ValueError(f'num_particles must be at least 1, got {num_particles}')
    ntime = jnp.shape(model.times)[0]
    if jnp.shape(ys)[0] != ntime:
        raise ValueError(
            f'ys has {jnp.shape(ys)[0]} rows but the model has {ntime} '
            'observation times'
        )


def check_filter_failure(
    posterior: PfilterPosterior,
    iteration: int | None = None,
) -> None:
    """Raise :class:`~pompjax.errors.FilterFailureError` if the pass failed.

    Must be called on concrete (non-traced) output.
    """
    step = int(posterior.failure_step)
    if step >= 0:
        raise FilterFailureError(step, iteration)


def filter_pass(
    key: PRNGKeyT,
    model: PompModel,
    ys: Float[Array, 'ntime ...'],
    params: Float[Array, 'num_particles param_dim'],
    resampling_fn: Callable = systematic,
    resampling_threshold: float = 1.0,
    decode: Callable | None = None,
    init_sd: Float[Array, ' param_dim'] | None = None,
    step_sd: Callable | None = None,
) -> tuple[PfilterPosterior, Float[Array, 'num_particles param_dim']]:
    r"""One filtering pass with a per-particle parameter swarm.

    Parameters are resampled together with the states, so a parameter
    value survives only as long as the particle carrying it.  With
    ``init_sd`` and ``step_sd`` this is the inner loop of IF2; without
    them (and with identical rows in *params*) it is the plain bootstrap
    filter.

    Args:
        key: JAX PRNG key.
        model: The POMP model.
        ys: Observations.
        params: One parameter vector per particle, on the scale
            *decode* expects.
        resampling_fn: Resampling algorithm.
        resampling_threshold: ESS fraction triggering resampling.
        decode: Maps *params* to the natural scale before every model
            call.  Defaults to the identity.
        init_sd: Random-walk sd applied once, before the initial state
            is drawn.
        step_sd: Function ``step -> sd`` giving the random-walk sd
            applied before propagating to observation ``step``.

    Returns:
        The pass posterior and the final parameter swarm (undecoded).
    """
    num_particles = params.shape[0]
    decode = (lambda p: p) if decode is None else decode
    uniform_log_w = jnp.full(num_particles, -jnp.log(float(num_particles)))
    identity_ancestors = jnp.arange(num_particles, dtype=jnp.int32)

    times = jnp.asarray(model.times)
    t_prev = jnp.concatenate([jnp.asarray([model.t0], dtype=times.dtype), times[:-1]])
    ntime = times.shape[0]

    # --- Initialise at t0 ---------------------------------------------------
    key, pert_key, init_key = jr.split(key, 3)
    if init_sd is not None:
        params = perturb(pert_key, params, init_sd)
    init_keys = jr.split(init_key, num_particles)
    particles_0 = vmap(model.initializer)(init_keys, decode(params))

    def _step(carry, args):
        particles, params, log_weights, num_failures = carry
        step_key, n, t_start, t_end, y_t = args
        k_pert, k_prop, k_res = jr.split(step_key, 3)

        # 1. Perturb parameters (IF2 only)
        if step_sd is not None:
            params = perturb(k_pert, params, step_sd(n))
        theta = decode(params)

        # 2. Reset accumulators and propagate
        particles = model.reset_accumulators(particles)
        prop_keys = jr.split(k_prop, num_particles)
        particles = vmap(model.propagator, in_axes=(0, 0, 0, None, None))(
            prop_keys, particles, theta, t_start, t_end
        )

        # 3. Weight by measurement density
        log_obs = vmap(
            lambda x, th: model.measurement_density(y_t, x, th, True)
        )(particles, theta)
        log_w_unnorm = log_weights + sanitize_log_weights(log_obs)

        # Incoming weights are normalized, so logsumexp of the product is
        # the conditional likelihood; with uniform incoming weights it is
        # the log-mean-exp of log_obs.
        failed = all_zero(log_w_unnorm)
        log_w_norm, log_sum = log_normalize(
            jnp.where(failed, uniform_log_w, log_w_unnorm)
        )
        cond_loglik = jnp.where(failed, -jnp.inf, log_sum)
        ess_t = compute_ess(log_w_unnorm)
        filter_mean = jnp.exp(log_w_norm) @ particles

        # 4. Resample states and parameters together
        do_resample = ess_t <= resampling_threshold * num_particles
        ancestors = lax.cond(
            do_resample,
            lambda: resampling_fn(k_res, jnp.exp(log_w_norm), num_particles).astype(
                jnp.int32
            ),
            lambda: identity_ancestors,
        )
        new_carry = (
            particles[ancestors],
            params[ancestors],
            jnp.where(do_resample, uniform_log_w, log_w_norm),
            num_failures + failed.astype(jnp.int32),
        )
        return new_carry, (cond_loglik, ess_t, filter_mean, failed)

    init_carry = (particles_0, params, uniform_log_w, jnp.asarray(0, jnp.int32))
    step_keys = jr.split(key, ntime)
    steps = jnp.arange(ntime)
    (particles, params, log_weights, num_failures), (
        cond_logliks,
        ess,
        filter_means,
        failed,
    ) = lax.scan(_step, init_carry, (step_keys, steps, t_prev, times, jnp.asarray(ys)))

    failure_step = jnp.where(
        jnp.any(failed), jnp.argmax(failed).astype(jnp.int32), -1
    )
    posterior = PfilterPosterior(
        marginal_loglik=jnp.sum(cond_logliks),
        cond_logliks=cond_logliks,
        ess=ess,
        filter_means=filter_means,
        final_particles=particles,
        final_log_weights=log_weights,
        failure_step=failure_step,
        num_failures=num_failures,
    )
    return posterior, params
