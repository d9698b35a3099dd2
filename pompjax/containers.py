# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Containers for filter, IF2 and replication output.

All containers are :class:`~typing.NamedTuple` subclasses so they are
registered as JAX PyTrees by default and can be returned from ``vmap``.
"""

from typing import NamedTuple

from jaxtyping import Array, Float, Int

from pompjax.types import IntScalar, Scalar


class PfilterPosterior(NamedTuple):
    r"""Output of one particle filter pass.

    Attributes:
        marginal_loglik: Estimate of :math:`\log p(y_{1:T})`; ``-inf``
            when the filter failed at any step.
        cond_logliks: Conditional log-likelihoods
            :math:`\log \hat p(y_t \mid y_{1:t-1})`, shape ``(ntime,)``.
            They sum to ``marginal_loglik``.
        ess: Effective sample size after weighting at each step,
            shape ``(ntime,)``; zero at failed steps.
        filter_means: Weighted mean of the states at each step,
            shape ``(ntime, state_dim)``.
        final_particles: Swarm after the last step,
            shape ``(num_particles, state_dim)``.
        final_log_weights: Normalized log weights of the final swarm.
        failure_step: Index of the first step at which every weight was
            zero, or ``-1``.
        num_failures: Number of failed steps.
    """

    marginal_loglik: Scalar
    cond_logliks: Float[Array, ' ntime']
    ess: Float[Array, ' ntime']
    filter_means: Float[Array, 'ntime state_dim']
    final_particles: Float[Array, 'num_particles state_dim']
    final_log_weights: Float[Array, ' num_particles']
    failure_step: IntScalar
    num_failures: IntScalar


class MifPosterior(NamedTuple):
    r"""Output of an iterated filtering (IF2) run.

    The in-pass log-likelihoods are computed with perturbed parameters
    and overestimate the likelihood at :attr:`theta`; evaluate it with
    :func:`~pompjax.aggregate.replicate_pfilter` instead.

    Attributes:
        theta: Final parameter estimate (natural scale),
            shape ``(param_dim,)``.
        traces: Parameter estimate before the first and after each
            iteration (natural scale), shape ``(num_iterations + 1,
            param_dim)``.
        logliks: In-pass log-likelihood of each iteration,
            shape ``(num_iterations,)``.
        failure_steps: First failing step of each iteration or ``-1``,
            shape ``(num_iterations,)``.
        final_params: Parameter swarm after the last iteration (natural
            scale), shape ``(num_particles, param_dim)``.
    """

    theta: Float[Array, ' param_dim']
    traces: Float[Array, 'num_iterations_plus_one param_dim']
    logliks: Float[Array, ' num_iterations']
    failure_steps: Int[Array, ' num_iterations']
    final_params: Float[Array, 'num_particles param_dim']


class LikelihoodEstimate(NamedTuple):
    """Combined estimate from replicated particle filters.

    Attributes:
        loglik: ``logmeanexp`` of the replicate log-likelihoods.
        loglik_se: Jackknife standard error of *loglik*.
        logliks: Individual replicate estimates,
            shape ``(num_replicates,)``.
        num_failed: Number of replicates that hit a filter failure.
    """

    loglik: Scalar
    loglik_se: Scalar
    logliks: Float[Array, ' num_replicates']
    num_failed: IntScalar
