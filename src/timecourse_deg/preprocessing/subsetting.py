"""
Day/condition sample subsetting.

Returns a StepResult rather than raising so callers can skip a day or
condition and keep going.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

import pandas as pd
import logging

from ..context import SkipReason, StepResult
from .data_loader import CleanDataset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleSubset:
    """Aligned count submatrix and metadata for one day."""
    counts: pd.DataFrame
    samples: pd.DataFrame

    @property
    def n_samples(self) -> int:
        return self.counts.shape[1]


def subset_samples(
    dataset: CleanDataset,
    day,
    conditions: Optional[Iterable[str]] = None,
    min_samples: int = 2,
    day_col: str = 'day',
    condition_col: str = 'condition',
    step: str = 'subset'
) -> StepResult:
    """
    Select the samples of one day, optionally restricted to some conditions.

    Parameters
    ----------
    dataset : CleanDataset
        Cleaned counts and metadata
    day
        Day to keep; compared as text against the metadata day column
    conditions : iterable of str, optional
        Allowed condition labels. When given, each of them must contribute
        at least ``min_samples`` replicates.
    min_samples : int
        Minimum number of samples (and of replicates per requested condition)

    Returns
    -------
    StepResult
        ``value`` is a SampleSubset on success; otherwise skipped with
        ``SkipReason.INSUFFICIENT_SAMPLES``.
    """
    day = str(day)
    samples = dataset.samples
    mask = samples[day_col] == day

    condition_label = None
    if conditions is not None:
        conditions = list(conditions)
        condition_label = "+".join(conditions)
        mask &= samples[condition_col].isin(conditions)

    selected = samples.loc[mask]

    if len(selected) < min_samples:
        message = f"{len(selected)} sample(s) found, at least {min_samples} required"
        logger.debug(f"Day {day} [{condition_label or 'all conditions'}]: {message}")
        return StepResult.skipped(step, SkipReason.INSUFFICIENT_SAMPLES, message,
                                  day=day, condition=condition_label)

    if conditions is not None:
        per_group = selected[condition_col].value_counts()
        short = {c: int(per_group.get(c, 0)) for c in conditions
                 if per_group.get(c, 0) < min_samples}
        if short:
            message = (f"too few replicates per condition {short}, "
                       f"at least {min_samples} required")
            logger.debug(f"Day {day} [{condition_label}]: {message}")
            return StepResult.skipped(step, SkipReason.INSUFFICIENT_SAMPLES, message,
                                      day=day, condition=condition_label)

    counts = dataset.counts[selected.index]
    logger.debug(f"Day {day}: selected {counts.shape[1]} samples")

    return StepResult.success(step, SampleSubset(counts=counts, samples=selected),
                              day=day, condition=condition_label)
