# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Type aliases for pompjax."""

from typing import Union

from jaxtyping import Array, Float, Int, PRNGKeyArray

PRNGKeyT = PRNGKeyArray
"""JAX PRNG key (handles both old and new JAX key formats)."""

Scalar = Union[float, Float[Array, ""]]
"""Python float or scalar JAX array with float dtype."""

IntScalar = Union[int, Int[Array, ""]]
"""Python int or scalar JAX array with int dtype."""

ParamDict = dict[str, float]
"""Parameter vector keyed by parameter name (natural scale)."""

Box = dict[str, tuple[float, float]]
"""Per-parameter ``(lower, upper)`` bounds."""
