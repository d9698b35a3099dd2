# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Global likelihood search from many starting points.

Starting points are drawn across a parameter box, IF2 is run from each,
and the likelihood at every IF2 estimate is re-evaluated with replicated
particle filters.  Agreement between estimates reached from diverse
starts is the evidence that the global maximum has been found.

Every task owns a PRNG key split from the master key, reads only the
model and data, and returns its own :class:`SearchResult`, so tasks can
run in any ``concurrent.futures.Executor`` (threads are the safe choice,
since model functions are usually closures and do not pickle) or
sequentially with identical results.
"""

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import Executor
from typing import NamedTuple

import jax.random as jr
import numpy as np
from jax import vmap

from pompjax.aggregate import replicate_pfilter
from pompjax.containers import MifPosterior
from pompjax.errors import DomainError, FilterFailureError
from pompjax.mif import iterated_filtering
from pompjax.model import PompModel
from pompjax.random_walk import RandomWalkSD
from pompjax.store import ResultRecord, ResultStore
from pompjax.transforms import ParameterTransform
from pompjax.types import Box, ParamDict, PRNGKeyT

logger = logging.getLogger(__name__)


class SearchSettings(NamedTuple):
    """Algorithmic settings shared by every search task.

    Attributes:
        num_particles: Particles per IF2 pass.
        num_iterations: IF2 iterations per start.
        rw_sd: Random-walk sds; fixed parameters must not appear.
        cooling_fraction: IF2 cooling fraction.
        cooling_reference: IF2 reference iteration count.
        transform: Estimation-scale transforms.
        num_particles_eval: Particles per evaluation filter; defaults to
            *num_particles*.
        num_replicates: Evaluation filters per estimate.
    """

    num_particles: int
    num_iterations: int
    rw_sd: RandomWalkSD
    cooling_fraction: float = 0.5
    cooling_reference: float = 50
    transform: ParameterTransform | None = None
    num_particles_eval: int | None = None
    num_replicates: int = 10


class SearchResult(NamedTuple):
    """Outcome of one search task.

    Attributes:
        start: Starting point (natural scale).
        theta: IF2 estimate, or ``None`` if IF2 itself failed.
        loglik: Replicated log-likelihood at *theta*; ``-inf`` on
            failure.
        loglik_se: Its standard error; ``nan`` on failure.
        mif: The IF2 posterior, for trace diagnostics.
        error: Failure message, ``None`` on success.
    """

    start: ParamDict
    theta: ParamDict | None
    loglik: float
    loglik_se: float
    mif: MifPosterior | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def record(self) -> ResultRecord:
        """The :class:`~pompjax.store.ResultRecord` for a successful task."""
        if not self.ok:
            raise ValueError(f'search task failed: {self.error}')
        return ResultRecord(self.theta, self.loglik, self.loglik_se)


def uniform_design(key: PRNGKeyT, box: Box, num_guesses: int) -> list[ParamDict]:
    """Draw *num_guesses* points uniformly from *box*."""
    names, lower, upper = _check_box(box)
    u = np.asarray(jr.uniform(key, (num_guesses, len(names))))
    return _to_dicts(names, lower + (upper - lower) * u)


def latin_hypercube(key: PRNGKeyT, box: Box, num_guesses: int) -> list[ParamDict]:
    """Draw a Latin hypercube design of *num_guesses* points from *box*.

    Each coordinate range is cut into *num_guesses* equal strata and
    every stratum is used exactly once per coordinate.
    """
    names, lower, upper = _check_box(box)
    k_perm, k_jitter = jr.split(key)
    perm_keys = jr.split(k_perm, len(names))
    strata = vmap(lambda k: jr.permutation(k, num_guesses))(perm_keys).T
    jitter = jr.uniform(k_jitter, (num_guesses, len(names)))
    u = np.asarray((strata + jitter) / num_guesses)
    return _to_dicts(names, lower + (upper - lower) * u)


def global_search(
    key: PRNGKeyT,
    model: PompModel,
    ys,
    box: Box,
    num_guesses: int,
    settings: SearchSettings,
    fixed: Mapping[str, float] | None = None,
    executor: Executor | None = None,
    design: Callable = uniform_design,
    store: ResultStore | None = None,
) -> list[SearchResult]:
    """Run IF2 from many starts and evaluate each estimate.

    Args:
        key: Master PRNG key.
        model: The POMP model.
        ys: Observations.
        box: ``(lower, upper)`` for every estimated parameter.
        num_guesses: Number of starting points.
        settings: IF2 and evaluation settings.
        fixed: Values of the parameters that are not estimated.
        executor: Runs the tasks; sequential when ``None``.
        design: ``(key, box, num_guesses) -> list[dict]`` drawing the
            starting points.
        store: If given, records of successful tasks are appended to it.

    Returns:
        One :class:`SearchResult` per starting point, in design order.
        Failed tasks are reported in their result and do not stop the
        others.
    """
    fixed = dict(fixed or {})
    _check_partition(model, box, fixed, settings.rw_sd)
    if num_guesses < 1:
        raise ValueError(f'num_guesses must be at least 1, got {num_guesses}')
    model.validate()

    k_design, k_tasks = jr.split(key)
    starts = [{**guess, **fixed} for guess in design(k_design, box, num_guesses)]
    task_keys = jr.split(k_tasks, num_guesses)
    logger.info(
        'global search: %d starts, %d IF2 iterations of %d particles',
        num_guesses,
        settings.num_iterations,
        settings.num_particles,
    )

    if executor is None:
        results = [
            _search_task(k, model, ys, start, settings)
            for k, start in zip(task_keys, starts)
        ]
    else:
        futures = [
            executor.submit(_search_task, k, model, ys, start, settings)
            for k, start in zip(task_keys, starts)
        ]
        results = [f.result() for f in futures]

    num_failed = sum(not r.ok for r in results)
    if num_failed:
        logger.warning('global search: %d of %d tasks failed', num_failed, num_guesses)
    if store is not None:
        for result in results:
            if result.ok:
                store.append(result.record())
    return results


def _search_task(
    key: PRNGKeyT,
    model: PompModel,
    ys,
    start: ParamDict,
    settings: SearchSettings,
) -> SearchResult:
    k_mif, k_eval = jr.split(key)
    try:
        mif = iterated_filtering(
            k_mif,
            model,
            ys,
            start,
            num_particles=settings.num_particles,
            num_iterations=settings.num_iterations,
            rw_sd=settings.rw_sd,
            cooling_fraction=settings.cooling_fraction,
            cooling_reference=settings.cooling_reference,
            transform=settings.transform,
        )
        estimate = replicate_pfilter(
            k_eval,
            model,
            ys,
            mif.theta,
            num_particles=settings.num_particles_eval or settings.num_particles,
            num_replicates=settings.num_replicates,
        )
    except (FilterFailureError, DomainError) as exc:
        logger.warning('search task starting at %s failed: %s', start, exc)
        return SearchResult(start, None, -np.inf, np.nan, None, str(exc))
    theta = model.theta_dict(mif.theta)
    if estimate.num_failed == settings.num_replicates:
        message = (
            f'all {settings.num_replicates} evaluation replicates hit a filter '
            'failure'
        )
        logger.warning('search task starting at %s failed: %s', start, message)
        return SearchResult(start, theta, -np.inf, np.nan, mif, message)
    return SearchResult(
        start=start,
        theta=theta,
        loglik=float(estimate.loglik),
        loglik_se=float(estimate.loglik_se),
        mif=mif,
    )


def _check_box(box: Box) -> tuple[list[str], np.ndarray, np.ndarray]:
    if not box:
        raise ValueError('box must name at least one parameter')
    names = list(box)
    lower = np.array([float(box[n][0]) for n in names])
    upper = np.array([float(box[n][1]) for n in names])
    if not (np.all(np.isfinite(lower)) and np.all(np.isfinite(upper))):
        raise ValueError('box bounds must be finite')
    if np.any(lower > upper):
        raise ValueError(f'box has lower > upper: {box}')
    return names, lower, upper


def _check_partition(
    model: PompModel,
    box: Box,
    fixed: Mapping[str, float],
    rw_sd: RandomWalkSD,
) -> None:
    overlap = set(box) & set(fixed)
    if overlap:
        raise ValueError(f'parameters both searched and fixed: {sorted(overlap)}')
    covered = set(box) | set(fixed)
    if covered != set(model.param_names):
        raise ValueError(
            'box and fixed must cover param_names exactly: '
            f'missing={sorted(set(model.param_names) - covered)}, '
            f'unknown={sorted(covered - set(model.param_names))}'
        )
    perturbed_fixed = [n for n in fixed if rw_sd.sd.get(n, 0.0) != 0.0]
    if perturbed_fixed:
        raise ValueError(f'fixed parameters have a nonzero rw_sd: {perturbed_fixed}')


def _to_dicts(names: list[str], values: np.ndarray) -> list[ParamDict]:
    return [dict(zip(names, map(float, row))) for row in values.tolist()]
