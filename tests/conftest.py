# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Shared test models and fixtures for pompjax.

Three models are used throughout:

- a pure death process with binomially thinned counts, whose exact
  likelihood follows from the forward algorithm on ``{0, ..., N0}``;
- a 1-D linear Gaussian model, whose exact likelihood is given by the
  Kalman filter in Dynamax;
- a stochastic SIR model with binomial Euler flows and an incidence
  accumulator.
"""

import jax
import jax.numpy as jnp
import jax.random as jr
import numpy as np
import pytest
from jax.scipy.special import gammaln, xlog1py, xlogy
from jax.scipy.stats import norm
from scipy.stats import binom
from tensorflow_probability.substrates.jax import distributions as tfd

import pompjax
from pompjax.model import PompModel, euler_propagator
from pompjax.simulate import simulate

# Configure JAX to use 64-bit floats for higher precision in tests.
jax.config.update('jax_enable_x64', True)

DEATH_N0 = 30
SIR_POP = 1000.0


def binom_logpmf(k, n, p):
    """Binomial log-pmf that is ``-inf`` outside ``0 <= k <= n``."""
    lp = (
        gammaln(n + 1.0)
        - gammaln(k + 1.0)
        - gammaln(n - k + 1.0)
        + xlogy(k, p)
        + xlog1py(n - k, -p)
    )
    return jnp.where((k >= 0) & (k <= n), lp, -jnp.inf)


# ---------------------------------------------------------------------------
# Pure death process
# ---------------------------------------------------------------------------


def make_death_model(times):
    """N_t ~ Bin(N_{t-1}, p^dt), y_t ~ Bin(N_t, rho), N_0 = DEATH_N0."""

    def initializer(key, theta):
        return jnp.array([float(DEATH_N0)])

    def propagator(key, state, theta, t_start, t_end):
        survival = theta[0] ** (t_end - t_start)
        n = tfd.Binomial(total_count=state[0], probs=survival).sample(seed=key)
        return jnp.reshape(n, (1,))

    def measurement_density(y, state, theta, log):
        lp = binom_logpmf(y[0], state[0], theta[1])
        return lp if log else jnp.exp(lp)

    def measurement_sampler(key, state, theta):
        y = tfd.Binomial(total_count=state[0], probs=theta[1]).sample(seed=key)
        return jnp.reshape(y, (1,))

    return PompModel(
        initializer=initializer,
        propagator=propagator,
        measurement_density=measurement_density,
        times=jnp.asarray(times, dtype=float),
        t0=0.0,
        state_names=('N',),
        param_names=('p', 'rho'),
        measurement_sampler=measurement_sampler,
    )


def death_exact_loglik(ys, p, rho):
    """Exact log-likelihood of unit-spaced death-process data."""
    support = np.arange(DEATH_N0 + 1)
    trans = binom.pmf(support[None, :], support[:, None], p)
    alpha = np.zeros(DEATH_N0 + 1)
    alpha[DEATH_N0] = 1.0
    loglik = 0.0
    for y in np.asarray(ys)[:, 0]:
        alpha = (alpha @ trans) * binom.pmf(y, support, rho)
        total = alpha.sum()
        loglik += np.log(total)
        alpha /= total
    return loglik


# ---------------------------------------------------------------------------
# Linear Gaussian model
# ---------------------------------------------------------------------------


def make_lgssm_model(times):
    """x_0 ~ N(0, 1), x_t = phi x_{t-1} + sigma_x eps, y_t = x_t + sigma_y eta."""

    def initializer(key, theta):
        return jr.normal(key, (1,))

    def propagator(key, state, theta, t_start, t_end):
        phi, sigma_x, _ = theta
        return phi * state + sigma_x * jr.normal(key, (1,))

    def measurement_density(y, state, theta, log):
        lp = norm.logpdf(y[0], state[0], theta[2])
        return lp if log else jnp.exp(lp)

    def measurement_sampler(key, state, theta):
        return state + theta[2] * jr.normal(key, (1,))

    return PompModel(
        initializer=initializer,
        propagator=propagator,
        measurement_density=measurement_density,
        times=jnp.asarray(times, dtype=float),
        t0=0.0,
        state_names=('x',),
        param_names=('phi', 'sigma_x', 'sigma_y'),
        measurement_sampler=measurement_sampler,
    )


# ---------------------------------------------------------------------------
# SIR model with an incidence accumulator
# ---------------------------------------------------------------------------


def _sir_step(key, x, theta, t, h):
    S, I, R, H = x
    beta, mu_ir, _ = theta
    k_si, k_ir = jr.split(key)
    p_si = 1.0 - jnp.exp(-beta * I / SIR_POP * h)
    p_ir = 1.0 - jnp.exp(-mu_ir * h)
    d_si = tfd.Binomial(total_count=S, probs=p_si).sample(seed=k_si)
    d_ir = tfd.Binomial(total_count=I, probs=p_ir).sample(seed=k_ir)
    return jnp.stack([S - d_si, I + d_si - d_ir, R + d_ir, H + d_si])


def make_sir_model(times, dt=0.1):
    def initializer(key, theta):
        return jnp.array([SIR_POP - 10.0, 10.0, 0.0, 0.0])

    def measurement_density(y, state, theta, log):
        lp = binom_logpmf(y[0], state[3], theta[2])
        return lp if log else jnp.exp(lp)

    def measurement_sampler(key, state, theta):
        y = tfd.Binomial(total_count=state[3], probs=theta[2]).sample(seed=key)
        return jnp.reshape(y, (1,))

    return PompModel(
        initializer=initializer,
        propagator=euler_propagator(_sir_step, dt),
        measurement_density=measurement_density,
        times=jnp.asarray(times, dtype=float),
        t0=0.0,
        state_names=('S', 'I', 'R', 'H'),
        param_names=('Beta', 'mu_IR', 'rho'),
        accum_names=('H',),
        measurement_sampler=measurement_sampler,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def package():
    """Return the top-level package module for introspection."""
    return pompjax


@pytest.fixture
def key():
    """Fixed JAX PRNG key for reproducibility."""
    return jr.PRNGKey(42)


@pytest.fixture
def death_model():
    return make_death_model(np.arange(1, 11))


@pytest.fixture
def death_theta():
    return {'p': 0.9, 'rho': 0.6}


@pytest.fixture
def death_data(death_model, death_theta):
    """Simulate 10 unit-spaced observations from the death process."""
    _, ys = simulate(jr.PRNGKey(0), death_model, death_theta)
    return ys


@pytest.fixture
def lgssm_model():
    return make_lgssm_model(np.arange(1, 51))


@pytest.fixture
def lgssm_theta():
    return {'phi': 0.9, 'sigma_x': 0.5, 'sigma_y': 1.0}


@pytest.fixture
def lgssm_data(lgssm_model, lgssm_theta):
    """Simulate T=50 observations from the 1-D linear Gaussian model."""
    _, ys = simulate(jr.PRNGKey(1), lgssm_model, lgssm_theta)
    return ys


@pytest.fixture
def sir_model():
    return make_sir_model(np.arange(1, 21))


@pytest.fixture
def sir_theta():
    return {'Beta': 1.5, 'mu_IR': 0.5, 'rho': 0.8}
