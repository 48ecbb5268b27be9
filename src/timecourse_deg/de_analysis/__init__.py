"""
Differential Expression Analysis module.
"""

from .differential_expression import (
    DEAnalysis,
    DEModelError,
    filter_low_counts,
    filter_significant,
    significance_mask,
    significant_gene_ids
)
from .deg_union import DEGUnionAggregator

__all__ = [
    'DEAnalysis',
    'DEModelError',
    'filter_low_counts',
    'filter_significant',
    'significance_mask',
    'significant_gene_ids',
    'DEGUnionAggregator'
]
