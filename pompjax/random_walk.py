# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Random-walk perturbations and the IF2 cooling schedule.

In iteration :math:`m` (counted from zero) and before observation
:math:`n` of :math:`N`, every parameter is perturbed on the estimation
scale by :math:`\mathcal{N}(0, (\sigma \, c_{m,n})^2)` with the geometric
cooling factor

.. math::

    c_{m,n} = f^{(m + n / N) / m_{ref}}

where :math:`f` is the cooling fraction and :math:`m_{ref}` the reference
iteration.  Hence :math:`c_{0,0} = 1` and :math:`c_{m_{ref},0} = f`.
"""

from collections.abc import Sequence
from typing import NamedTuple

import jax.numpy as jnp
import jax.random as jr
import numpy as np
from jaxtyping import Array, Float

from pompjax.types import IntScalar, PRNGKeyT, Scalar


class RandomWalkSD(NamedTuple):
    """Per-parameter random-walk standard deviations.

    Attributes:
        sd: Estimation-scale standard deviation per parameter name.
            Parameters not listed are not perturbed.
        ivp: Initial-value parameters, perturbed only once per pass,
            before the initial state is drawn.
    """

    sd: dict[str, float]
    ivp: tuple[str, ...] = ()

    def arrays(
        self,
        param_names: Sequence[str],
    ) -> tuple[np.ndarray, np.ndarray]:
        """Return ``(sd_step, sd_init)`` in *param_names* order.

        ``sd_init`` is applied once at the start of a pass (all
        parameters); ``sd_step`` before every observation (zero for
        initial-value parameters).

        Raises:
            ValueError: If a name is unknown or an sd is negative.
        """
        unknown = (set(self.sd) | set(self.ivp)) - set(param_names)
        if unknown:
            raise ValueError(f'unknown parameters in rw_sd: {sorted(unknown)}')
        negative = [name for name, v in self.sd.items() if v < 0]
        if negative:
            raise ValueError(f'negative random-walk sd for {negative}')
        sd_init = np.array([float(self.sd.get(n, 0.0)) for n in param_names])
        sd_step = np.where(
            [n in self.ivp for n in param_names], 0.0, sd_init
        )
        return sd_step, sd_init


def check_cooling(cooling_fraction: float, cooling_reference: float) -> None:
    """Raise ``ValueError`` unless ``0 < fraction <= 1`` and ``reference > 0``."""
    if not 0.0 < cooling_fraction <= 1.0:
        raise ValueError(
            f'cooling_fraction must be in (0, 1], got {cooling_fraction}'
        )
    if cooling_reference <= 0:
        raise ValueError(
            f'cooling_reference must be positive, got {cooling_reference}'
        )


def cooling_factor(
    iteration: IntScalar,
    cooling_fraction: float,
    cooling_reference: float,
    step: IntScalar = 0,
    num_steps: int = 1,
) -> Scalar:
    """Geometric cooling factor for *iteration* (0-based) and *step*.

    Args:
        iteration: Completed IF2 iterations before this one.
        cooling_fraction: Factor reached after *cooling_reference*
            iterations.
        cooling_reference: Reference iteration count.
        step: Observation index within the pass.
        num_steps: Number of observations in a pass.

    Returns:
        The multiplier applied to the random-walk sd.
    """
    exponent = (iteration + step / num_steps) / cooling_reference
    return jnp.power(cooling_fraction, exponent)


def perturb(
    key: PRNGKeyT,
    params: Float[Array, 'num_particles param_dim'],
    sd: Float[Array, ' param_dim'],
) -> Float[Array, 'num_particles param_dim']:
    """Add independent Gaussian noise with per-parameter sd *sd*."""
    noise = jr.normal(key, params.shape, dtype=params.dtype)
    return params + sd * noise
