# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Tests for pompjax.model."""

import jax.numpy as jnp
import jax.random as jr
import pytest

from pompjax.model import PompModel, euler_propagator


def _counting_step(key, state, theta, t, h):
    """Count sub-steps in state[0] and total elapsed time in state[1]."""
    return state + jnp.array([1.0, h])


def _bare_model(**overrides):
    fields = dict(
        initializer=lambda key, theta: jnp.zeros(2),
        propagator=euler_propagator(_counting_step, 0.3),
        measurement_density=lambda y, x, theta, log: jnp.asarray(0.0),
        times=jnp.array([1.0, 2.0, 3.0]),
        t0=0.0,
        state_names=('n', 'elapsed'),
        param_names=('a', 'b'),
        accum_names=('n',),
    )
    fields.update(overrides)
    return PompModel(**fields)


class TestThetaConversion:
    def test_theta_array_uses_param_order(self):
        model = _bare_model()
        arr = model.theta_array({'b': 2.0, 'a': 1.0})
        assert arr.tolist() == [1.0, 2.0]

    def test_theta_array_rejects_mismatch(self):
        model = _bare_model()
        with pytest.raises(ValueError, match='missing'):
            model.theta_array({'a': 1.0})
        with pytest.raises(ValueError, match='unknown'):
            model.theta_array({'a': 1.0, 'b': 2.0, 'c': 3.0})

    def test_theta_dict(self):
        model = _bare_model()
        assert model.theta_dict(jnp.array([1.5, -2.0])) == {'a': 1.5, 'b': -2.0}

    def test_coerce_theta_checks_shape(self):
        model = _bare_model()
        assert model.coerce_theta({'a': 1.0, 'b': 2.0}).shape == (2,)
        with pytest.raises(ValueError, match='expected 2'):
            model.coerce_theta(jnp.ones(3))


class TestAccumulators:
    def test_reset_sets_exact_zero(self):
        model = _bare_model()
        swarm = jnp.array([[3.0, 4.0], [5.0, 6.0]])
        out = model.reset_accumulators(swarm)
        assert jnp.all(out[:, 0] == 0.0)
        assert jnp.array_equal(out[:, 1], swarm[:, 1])

    def test_no_accumulators_is_identity(self):
        model = _bare_model(accum_names=())
        state = jnp.array([3.0, 4.0])
        assert model.reset_accumulators(state) is state


class TestValidate:
    def test_valid_model(self):
        _bare_model().validate()

    @pytest.mark.parametrize(
        'overrides, message',
        [
            (dict(accum_names=('zzz',)), 'not state names'),
            (dict(param_names=('a', 'a')), 'duplicates'),
            (dict(times=jnp.array([0.0, 1.0])), 'must precede'),
            (dict(times=jnp.array([1.0, 3.0, 2.0])), 'strictly increasing'),
        ],
    )
    def test_invalid_models(self, overrides, message):
        with pytest.raises(ValueError, match=message):
            _bare_model(**overrides).validate()


class TestEulerPropagator:
    """Sub-steps are equal and cover the interval exactly."""

    def test_substep_count_and_size(self):
        prop = euler_propagator(_counting_step, 0.3)
        out = prop(jr.PRNGKey(0), jnp.zeros(2), jnp.zeros(2), 0.0, 1.0)
        # ceil(1.0 / 0.3) = 4 sub-steps of 0.25
        assert out[0] == 4.0
        assert jnp.allclose(out[1], 1.0)

    def test_exact_multiple_does_not_gain_a_step(self):
        prop = euler_propagator(_counting_step, 0.3)
        out = prop(jr.PRNGKey(0), jnp.zeros(2), jnp.zeros(2), 0.0, 0.9)
        assert out[0] == 3.0
        assert jnp.allclose(out[1], 0.9)

    def test_rejects_nonpositive_dt(self):
        with pytest.raises(ValueError, match='dt must be positive'):
            euler_propagator(_counting_step, 0.0)
