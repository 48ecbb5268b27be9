"""
Preprocessing module for time-course RNA-seq analysis.
"""

from .data_loader import AlignmentError, CleanDataset, TimeCourseDataLoader
from .subsetting import SampleSubset, subset_samples
from .normalization import (
    RNAseqNormalizer,
    compare_library_sizes,
    drop_constant_rows,
    zscore_rows
)

__all__ = [
    'AlignmentError',
    'CleanDataset',
    'TimeCourseDataLoader',
    'SampleSubset',
    'subset_samples',
    'RNAseqNormalizer',
    'compare_library_sizes',
    'drop_constant_rows',
    'zscore_rows'
]
