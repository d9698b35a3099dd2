# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Parameter transforms between the natural and estimation scales.

Iterated filtering perturbs parameters with Gaussian noise, so it works on
an unconstrained *estimation scale*:

- positive parameters use :math:`\phi = \log \theta`,
- parameters in :math:`(0, 1)` use :math:`\phi = \mathrm{logit}\,\theta`,
- all other parameters are left unchanged.

Model functions always receive natural-scale values.
"""

from collections.abc import Sequence
from typing import NamedTuple

import jax.numpy as jnp
import numpy as np
from jax.nn import sigmoid
from jax.scipy.special import logit
from jaxtyping import Array, Float

from pompjax.errors import DomainError


class ParameterTransform(NamedTuple):
    """Assignment of log / logit transforms to named parameters.

    Attributes:
        param_names: Ordered parameter names (``PompModel.param_names``).
        log: Names of strictly positive parameters.
        logit: Names of parameters constrained to ``(0, 1)``.
    """

    param_names: tuple[str, ...]
    log: tuple[str, ...] = ()
    logit: tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        param_names: Sequence[str],
        log: Sequence[str] = (),
        logit: Sequence[str] = (),
    ) -> 'ParameterTransform':
        """Build a transform, checking the names.

        Raises:
            ValueError: If a name is unknown or assigned two transforms.
        """
        names = tuple(param_names)
        unknown = (set(log) | set(logit)) - set(names)
        if unknown:
            raise ValueError(f'unknown parameters in transform: {sorted(unknown)}')
        both = set(log) & set(logit)
        if both:
            raise ValueError(f'parameters with two transforms: {sorted(both)}')
        return cls(names, tuple(log), tuple(logit))

    @property
    def log_mask(self) -> np.ndarray:
        return np.array([name in self.log for name in self.param_names])

    @property
    def logit_mask(self) -> np.ndarray:
        return np.array([name in self.logit for name in self.param_names])

    def to_estimation_scale(
        self,
        theta: Float[Array, '... param_dim'],
    ) -> Float[Array, '... param_dim']:
        """Map natural-scale parameters to the estimation scale."""
        theta = jnp.asarray(theta)
        return jnp.where(
            self.log_mask,
            jnp.log(theta),
            jnp.where(self.logit_mask, logit(theta), theta),
        )

    def from_estimation_scale(
        self,
        phi: Float[Array, '... param_dim'],
    ) -> Float[Array, '... param_dim']:
        """Map estimation-scale parameters back to the natural scale.

        Decoded values are clipped into the open support so that
        floating-point over/underflow cannot produce a zero or infinite
        rate or a probability of exactly zero or one.
        """
        phi = jnp.asarray(phi)
        finfo = jnp.finfo(phi.dtype)
        positive = jnp.clip(jnp.exp(phi), finfo.tiny, finfo.max)
        unit = jnp.clip(sigmoid(phi), finfo.tiny, 1.0 - finfo.epsneg)
        return jnp.where(
            self.log_mask,
            positive,
            jnp.where(self.logit_mask, unit, phi),
        )

    def validate(self, theta: Float[Array, ' param_dim']) -> None:
        """Check natural-scale values against each parameter's support.

        Raises:
            DomainError: If a value is non-finite, a log-transformed value
                is not positive, or a logit-transformed value is outside
                ``(0, 1)``.
        """
        values = np.asarray(theta, dtype=float)
        bad = ~np.isfinite(values)
        bad |= self.log_mask & ~(values > 0)
        bad |= self.logit_mask & ~((values > 0) & (values < 1))
        if np.any(bad):
            offending = {
                name: float(v)
                for name, v, b in zip(self.param_names, values, bad)
                if b
            }
            raise DomainError(f'parameters outside their support: {offending}')


def identity_transform(param_names: Sequence[str]) -> ParameterTransform:
    """Transform that leaves every parameter on its natural scale."""
    return ParameterTransform(tuple(param_names))
