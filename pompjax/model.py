# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Model interface for partially observed Markov processes.

A POMP model is a latent Markov process :math:`X_t` observed at times
:math:`t_1 < \dots < t_T` through a measurement density
:math:`f(y_n \mid x_{t_n}; \theta)`.  The engine never looks inside the
model: it only calls the four functions bundled in :class:`PompModel`.

All functions operate on a *single* particle and are ``vmap``-ped over
the swarm internally, so they must be written in ``jax.numpy``:

- ``initializer(key, theta) -> state`` draws :math:`X_{t_0}`.
- ``propagator(key, state, theta, t_start, t_end) -> state`` draws
  :math:`X_{t_{end}} \mid X_{t_{start}}`.
- ``measurement_density(y, state, theta, log) -> scalar`` evaluates
  :math:`f(y \mid x; \theta)`, on the log scale when ``log`` is true.
- ``measurement_sampler(key, state, theta) -> y`` draws a synthetic
  observation (only needed by :func:`~pompjax.simulate.simulate`).

States and parameters are flat arrays ordered by ``state_names`` and
``param_names``.
"""

from collections.abc import Callable, Mapping
from typing import NamedTuple

import jax.numpy as jnp
import jax.random as jr
import numpy as np
from jax import lax
from jaxtyping import Array, Float

from pompjax.types import ParamDict, PRNGKeyT


class PompModel(NamedTuple):
    r"""A partially observed Markov process.

    Attributes:
        initializer: ``(key, theta) -> state``.
        propagator: ``(key, state, theta, t_start, t_end) -> state``.
        measurement_density: ``(y, state, theta, log) -> scalar``.
        times: Observation times, shape ``(ntime,)``, strictly
            increasing.
        t0: Time at which the initial state is drawn; must precede
            ``times[0]``.
        state_names: Ordered names of the state components.
        param_names: Ordered names of the parameters.
        accum_names: State components reset to zero at the start of
            every observation interval.
        measurement_sampler: ``(key, state, theta) -> y``; optional.
    """

    initializer: Callable
    propagator: Callable
    measurement_density: Callable
    times: Float[Array, ' ntime']
    t0: float
    state_names: tuple[str, ...]
    param_names: tuple[str, ...]
    accum_names: tuple[str, ...] = ()
    measurement_sampler: Callable | None = None

    @property
    def state_dim(self) -> int:
        return len(self.state_names)

    @property
    def param_dim(self) -> int:
        return len(self.param_names)

    @property
    def accum_mask(self) -> np.ndarray:
        """Boolean mask over ``state_names`` marking accumulators."""
        return np.array(
            [name in self.accum_names for name in self.state_names],
            dtype=bool,
        )

    def reset_accumulators(
        self,
        state: Float[Array, '... state_dim'],
    ) -> Float[Array, '... state_dim']:
        """Set the accumulator components of *state* to exactly zero.

        Works on a single state or on a whole swarm (the mask broadcasts
        over the trailing axis).
        """
        if not self.accum_names:
            return state
        return jnp.where(self.accum_mask, jnp.zeros_like(state), state)

    def theta_array(self, theta: Mapping[str, float]) -> Float[Array, ' param_dim']:
        """Convert a parameter dict into an array in ``param_names`` order.

        Raises:
            ValueError: If *theta* is missing a parameter or names one the
                model does not declare.
        """
        missing = [name for name in self.param_names if name not in theta]
        unknown = [name for name in theta if name not in self.param_names]
        if missing or unknown:
            raise ValueError(
                f'theta does not match param_names: missing={missing}, '
                f'unknown={unknown}'
            )
        return jnp.asarray([float(theta[name]) for name in self.param_names])

    def coerce_theta(
        self,
        theta: Mapping[str, float] | Float[Array, ' param_dim'],
    ) -> Float[Array, ' param_dim']:
        """Accept a parameter dict or array and return an array."""
        if isinstance(theta, Mapping):
            return self.theta_array(theta)
        theta = jnp.asarray(theta, dtype=float)
        if theta.shape != (self.param_dim,):
            raise ValueError(
                f'expected {self.param_dim} parameters, got shape {theta.shape}'
            )
        return theta

    def theta_dict(self, theta: Float[Array, ' param_dim']) -> ParamDict:
        """Convert a parameter array back into a name-keyed dict."""
        values = np.asarray(theta, dtype=float)
        if values.shape != (self.param_dim,):
            raise ValueError(
                f'expected {self.param_dim} parameters, got shape {values.shape}'
            )
        return dict(zip(self.param_names, values.tolist()))

    def validate(self) -> None:
        """Check the model metadata for consistency.

        Raises:
            ValueError: On duplicated names, unknown accumulators or
                badly ordered observation times.
        """
        for label, names in (
            ('state_names', self.state_names),
            ('param_names', self.param_names),
        ):
            if len(set(names)) != len(names):
                raise ValueError(f'{label} contains duplicates: {names}')
        unknown = set(self.accum_names) - set(self.state_names)
        if unknown:
            raise ValueError(f'accumulators {sorted(unknown)} are not state names')
        times = np.asarray(self.times, dtype=float)
        if times.ndim != 1 or times.size == 0:
            raise ValueError('times must be a non-empty 1-D array')
        if times[0] <= self.t0:
            raise ValueError(f't0={self.t0} must precede the first time {times[0]}')
        if np.any(np.diff(times) <= 0):
            raise ValueError('times must be strictly increasing')


def euler_propagator(step_fn: Callable, dt: float) -> Callable:
    r"""Build a propagator from a fixed-step simulator.

    The interval :math:`[t_{start}, t_{end}]` is split into
    :math:`n = \lceil (t_{end} - t_{start}) / \delta \rceil` sub-steps of
    equal size :math:`h = (t_{end} - t_{start}) / n \le \delta`, and
    ``step_fn`` is applied ``n`` times.

    Args:
        step_fn: Function ``(key, state, theta, t, h) -> state`` advancing
            one particle by one sub-step of length ``h`` starting at
            ``t``.
        dt: Maximum sub-step size :math:`\delta`.

    Returns:
        A function with the ``propagator`` signature of
        :class:`PompModel`.
    """
    if dt <= 0:
        raise ValueError(f'dt must be positive, got {dt}')

    def propagator(
        key: PRNGKeyT,
        state: Float[Array, ' state_dim'],
        theta: Float[Array, ' param_dim'],
        t_start: Float[Array, ''],
        t_end: Float[Array, ''],
    ) -> Float[Array, ' state_dim']:
        span = t_end - t_start
        # Tolerance keeps an exact multiple of dt from gaining a step.
        nstep = jnp.maximum(jnp.ceil(span / dt - 1e-8), 1).astype(jnp.int32)
        h = span / nstep

        def _substep(i, x):
            return step_fn(jr.fold_in(key, i), x, theta, t_start + i * h, h)

        return lax.fori_loop(0, nstep, _substep, state)

    return propagator
