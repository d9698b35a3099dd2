# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Result records and the append-only store interface.

The engine only ever appends records and reads them all back; where and
how they are persisted is up to the implementation behind
:class:`ResultStore`.
"""

import math
from typing import NamedTuple, Protocol

from pompjax.types import ParamDict


class ResultRecord(NamedTuple):
    """A parameter vector with its replicated log-likelihood estimate.

    Attributes:
        theta: Natural-scale parameters keyed by name.
        loglik: Log-likelihood estimate.
        loglik_se: Monte Carlo standard error of *loglik*.
    """

    theta: ParamDict
    loglik: float
    loglik_se: float

    def as_row(self) -> dict[str, float]:
        """Flat ``{**theta, 'loglik': ..., 'loglik_se': ...}`` mapping."""
        return {**self.theta, 'loglik': self.loglik, 'loglik_se': self.loglik_se}


class ResultStore(Protocol):
    """Append-only collection of :class:`ResultRecord`."""

    def append(self, record: ResultRecord) -> None: ...

    def read_all(self) -> list[ResultRecord]: ...


class InMemoryResultStore:
    """:class:`ResultStore` kept in a Python list."""

    def __init__(self, records: list[ResultRecord] | None = None):
        self._records = list(records or [])

    def append(self, record: ResultRecord) -> None:
        self._records.append(record)

    def read_all(self) -> list[ResultRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)


def best_records(records: list[ResultRecord], n: int = 1) -> list[ResultRecord]:
    """Return the *n* records with the highest finite log-likelihood."""
    finite = [r for r in records if math.isfinite(r.loglik)]
    return sorted(finite, key=lambda r: r.loglik, reverse=True)[:n]
