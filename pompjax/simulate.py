# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Forward simulation from a POMP model.

Generates one trajectory of latent states and observations by drawing
from the initializer, the propagator (with accumulator resets) and the
measurement sampler in turn.  Uses the same :class:`~pompjax.model.PompModel`
as the filters, so synthetic data for validation come from exactly the
model being fitted.

The time loop is a :func:`jax.lax.scan`.
"""

from collections.abc import Mapping

import jax.numpy as jnp
import jax.random as jr
from jax import lax
from jaxtyping import Array, Float

from pompjax.model import PompModel
from pompjax.types import PRNGKeyT


def simulate(
    key: PRNGKeyT,
    model: PompModel,
    theta: Mapping[str, float] | Float[Array, ' param_dim'],
    times: Float[Array, ' ntime'] | None = None,
) -> tuple[Float[Array, 'ntime state_dim'], Float[Array, 'ntime ...']]:
    r"""Simulate states and observations at *times*.

    Args:
        key: JAX PRNG key.
        model: The POMP model; ``measurement_sampler`` is required.
        theta: Natural-scale parameters, as a dict or array.
        times: Observation times after ``model.t0``; defaults to
            ``model.times``.

    Returns:
        A tuple ``(states, ys)`` with one row per time.
    """
    if model.measurement_sampler is None:
        raise ValueError('model.measurement_sampler is required for simulation')
    theta = model.coerce_theta(theta)
    times = jnp.asarray(model.times if times is None else times)
    t_prev = jnp.concatenate([jnp.asarray([model.t0], dtype=times.dtype), times[:-1]])

    k_init, k_rest = jr.split(key)
    x_0 = model.initializer(k_init, theta)

    def _step(x_prev, args):
        step_key, t_start, t_end = args
        k_x, k_y = jr.split(step_key)
        x_t = model.propagator(
            k_x, model.reset_accumulators(x_prev), theta, t_start, t_end
        )
        y_t = model.measurement_sampler(k_y, x_t, theta)
        return x_t, (x_t, y_t)

    step_keys = jr.split(k_rest, times.shape[0])
    _, (states, ys) = lax.scan(_step, x_0, (step_keys, t_prev, times))
    return states, ys
