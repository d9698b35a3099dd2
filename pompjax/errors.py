# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Exceptions raised by the Python-level drivers."""


class FilterFailureError(RuntimeError):
    """Every particle was assigned zero weight at some observation.

    Attributes:
        step: Index of the first failing observation.
        iteration: IF2 iteration in which the failure happened, or
            ``None`` for a plain filtering pass.
    """

    def __init__(self, step: int, iteration: int | None = None):
        self.step = step
        self.iteration = iteration
        where = f'observation {step}'
        if iteration is not None:
            where += f' of IF2 iteration {iteration}'
        super().__init__(f'filter failure: all particle weights zero at {where}')


class DomainError(ValueError):
    """A parameter value lies outside the support of its transform."""
