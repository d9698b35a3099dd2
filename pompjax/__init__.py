# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Likelihood-based inference for POMP models with SMC and IF2 in JAX."""

from importlib.metadata import PackageNotFoundError as _PackageNotFoundError
from importlib.metadata import version as _version

from pompjax.aggregate import logmeanexp, logmeanexp_se, replicate_pfilter
from pompjax.containers import (
    LikelihoodEstimate,
    MifPosterior,
    PfilterPosterior,
)
from pompjax.errors import DomainError, FilterFailureError
from pompjax.ess import ess, log_ess
from pompjax.mif import iterated_filtering, mif_trace_records
from pompjax.model import PompModel, euler_propagator
from pompjax.pfilter import check_filter_failure, particle_filter
from pompjax.random_walk import RandomWalkSD, cooling_factor
from pompjax.resampling import (
    get_resampler,
    multinomial,
    residual,
    stratified,
    systematic,
)
from pompjax.search import (
    SearchResult,
    SearchSettings,
    global_search,
    latin_hypercube,
    uniform_design,
)
from pompjax.simulate import simulate
from pompjax.store import InMemoryResultStore, ResultRecord, best_records
from pompjax.transforms import ParameterTransform
from pompjax.weights import log_normalize, normalize

try:
    __version__ = _version('pompjax')
except _PackageNotFoundError:
    __version__ = '0.0.0'

__all__ = [
    'DomainError',
    'FilterFailureError',
    'InMemoryResultStore',
    'LikelihoodEstimate',
    'MifPosterior',
    'ParameterTransform',
    'PfilterPosterior',
    'PompModel',
    'RandomWalkSD',
    'ResultRecord',
    'SearchResult',
    'SearchSettings',
    '__version__',
    'best_records',
    'check_filter_failure',
    'cooling_factor',
    'ess',
    'euler_propagator',
    'get_resampler',
    'global_search',
    'iterated_filtering',
    'latin_hypercube',
    'log_ess',
    'log_normalize',
    'logmeanexp',
    'logmeanexp_se',
    'mif_trace_records',
    'multinomial',
    'normalize',
    'particle_filter',
    'replicate_pfilter',
    'residual',
    'simulate',
    'stratified',
    'systematic',
    'uniform_design',
]
