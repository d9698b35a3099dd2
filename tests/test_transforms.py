# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Tests for natural / estimation scale transforms."""

import jax.numpy as jnp
import numpy as np
import pytest

from pompjax.errors import DomainError
from pompjax.transforms import ParameterTransform, identity_transform


@pytest.fixture
def transform():
    return ParameterTransform.create(
        ('Beta', 'rho', 'shift'), log=('Beta',), logit=('rho',)
    )


class TestCreate:
    def test_masks(self, transform):
        assert transform.log_mask.tolist() == [True, False, False]
        assert transform.logit_mask.tolist() == [False, True, False]

    def test_unknown_name(self):
        with pytest.raises(ValueError, match='unknown'):
            ParameterTransform.create(('a',), log=('b',))

    def test_two_transforms(self):
        with pytest.raises(ValueError, match='two transforms'):
            ParameterTransform.create(('a',), log=('a',), logit=('a',))


class TestScales:
    def test_known_values(self, transform):
        phi = transform.to_estimation_scale(jnp.array([np.e, 0.5, -3.0]))
        assert jnp.allclose(phi, jnp.array([1.0, 0.0, -3.0]))

    def test_round_trip(self, transform):
        theta = jnp.array([[2.5, 0.3, -1.0], [1e-3, 0.999, 7.0]])
        back = transform.from_estimation_scale(transform.to_estimation_scale(theta))
        assert jnp.allclose(back, theta, rtol=1e-10)

    def test_decode_stays_in_support(self, transform):
        theta = transform.from_estimation_scale(
            jnp.array([[-1e4, -1e4, -1e4], [1e4, 1e4, 1e4]])
        )
        assert jnp.all(theta[:, 0] > 0)
        assert jnp.all(jnp.isfinite(theta[:, 0]))
        assert jnp.all((theta[:, 1] > 0) & (theta[:, 1] < 1))
        assert jnp.array_equal(theta[:, 2], jnp.array([-1e4, 1e4]))

    def test_large_log_value_decodes_finite(self):
        rate = ParameterTransform.create(('a',), log=('a',))
        theta = rate.from_estimation_scale(jnp.array([1000.0]))
        assert np.isfinite(theta[0])
        assert theta[0] == jnp.finfo(theta.dtype).max

    def test_identity(self):
        ident = identity_transform(('a', 'b'))
        x = jnp.array([-2.0, 5.0])
        assert jnp.array_equal(ident.to_estimation_scale(x), x)
        assert jnp.array_equal(ident.from_estimation_scale(x), x)


class TestValidate:
    def test_accepts_support(self, transform):
        transform.validate(jnp.array([1.0, 0.5, -10.0]))

    @pytest.mark.parametrize(
        'theta, name',
        [
            ([0.0, 0.5, 0.0], 'Beta'),
            ([1.0, 1.5, 0.0], 'rho'),
            ([1.0, 0.0, 0.0], 'rho'),
            ([1.0, 0.5, np.inf], 'shift'),
        ],
    )
    def test_rejects_outside_support(self, transform, theta, name):
        with pytest.raises(DomainError, match=name):
            transform.validate(jnp.array(theta))

    def test_domain_error_is_value_error(self, transform):
        with pytest.raises(ValueError):
            transform.validate(jnp.array([-1.0, 0.5, 0.0]))
