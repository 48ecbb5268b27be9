"""
Time-Course RNA-seq Data Loader and Cleaning
============================================

This module handles:
1. Loading the raw counts matrix (genes x samples)
2. Loading sample metadata (day, condition) and optional gene annotation
3. Normalizing sample identifiers (stripping the aligner file suffix)
4. Removing outlier samples
5. Verifying that counts and metadata describe the same samples
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd
import logging

logger = logging.getLogger(__name__)


class AlignmentError(ValueError):
    """Counts columns and sample metadata do not describe the same samples."""


@dataclass(frozen=True)
class CleanDataset:
    """Aligned counts, sample metadata and gene annotation."""
    counts: pd.DataFrame
    samples: pd.DataFrame
    genes: Optional[pd.DataFrame] = None

    @property
    def n_genes(self) -> int:
        return self.counts.shape[0]

    @property
    def n_samples(self) -> int:
        return self.counts.shape[1]


class TimeCourseDataLoader:
    """Load and clean a counts/samples/genes bundle."""

    def __init__(
        self,
        counts_file: str,
        samples_file: str,
        genes_file: Optional[str] = None,
        sample_suffix: str = '',
        sample_col: str = 'sample_id',
        day_col: str = 'day',
        condition_col: str = 'condition'
    ):
        """
        Initialize loader.

        Parameters
        ----------
        counts_file : str
            CSV with gene ids in the first column and one column per sample
        samples_file : str
            CSV with one row per sample
        genes_file : str, optional
            CSV with gene annotation, gene ids in the first column
        sample_suffix : str
            Filename suffix to strip from the end of count column names,
            e.g. ``_ReadsPerGene.out.tab``
        sample_col, day_col, condition_col : str
            Column names in the samples file
        """
        self.counts_file = Path(counts_file)
        self.samples_file = Path(samples_file)
        self.genes_file = Path(genes_file) if genes_file else None
        self.sample_suffix = sample_suffix
        self.sample_col = sample_col
        self.day_col = day_col
        self.condition_col = condition_col

        self.counts_df: Optional[pd.DataFrame] = None
        self.metadata_df: Optional[pd.DataFrame] = None
        self.genes_df: Optional[pd.DataFrame] = None

    def strip_suffix(self, sample_id: str) -> str:
        """Remove the configured suffix from the end of a sample id."""
        sample_id = str(sample_id).strip()
        if not self.sample_suffix:
            return sample_id
        return re.sub(re.escape(self.sample_suffix) + '$', '', sample_id)

    def load_counts(self) -> pd.DataFrame:
        """Load counts matrix from file."""
        logger.info(f"Loading counts from {self.counts_file}")

        counts = pd.read_csv(self.counts_file, index_col=0)
        counts.index = counts.index.astype(str)
        counts.columns = [self.strip_suffix(c) for c in counts.columns]

        duplicated_samples = counts.columns[counts.columns.duplicated()].tolist()
        if duplicated_samples:
            raise AlignmentError(
                f"Duplicate sample ids after stripping suffix: {duplicated_samples}"
            )
        duplicated_genes = counts.index[counts.index.duplicated()].tolist()
        if duplicated_genes:
            raise AlignmentError(f"Duplicate gene ids in counts: {duplicated_genes[:10]}")

        non_numeric = [c for c in counts.columns
                       if not pd.api.types.is_numeric_dtype(counts[c])]
        if non_numeric:
            raise ValueError(f"Counts matrix has non-numeric columns: {non_numeric}")
        missing = counts.columns[counts.isna().any()].tolist()
        if missing:
            raise ValueError(f"Counts matrix has missing values in samples: {missing}")
        if (counts < 0).any().any():
            raise ValueError("Counts matrix contains negative values")
        fractional = counts.index[(counts % 1 != 0).any(axis=1)].tolist()
        if fractional:
            raise ValueError(f"Counts matrix has non-integer values for genes: {fractional[:10]}")

        self.counts_df = counts.astype(int)
        logger.info(f"Loaded {self.counts_df.shape[0]} genes x {self.counts_df.shape[1]} samples")
        return self.counts_df

    def load_sample_metadata(self) -> pd.DataFrame:
        """
        Load sample metadata.

        Every column is read as text so that day "2" never silently turns
        into 2.0 and fails to match a day filter later on.
        """
        logger.info(f"Loading sample metadata from {self.samples_file}")

        metadata = pd.read_csv(self.samples_file, dtype=str)
        missing = {self.sample_col, self.day_col, self.condition_col} - set(metadata.columns)
        if missing:
            raise ValueError(f"Sample metadata missing columns: {sorted(missing)}")

        for col in (self.sample_col, self.day_col, self.condition_col):
            metadata[col] = metadata[col].str.strip()

        metadata[self.sample_col] = metadata[self.sample_col].map(self.strip_suffix)
        if metadata[self.sample_col].duplicated().any():
            dupes = metadata.loc[metadata[self.sample_col].duplicated(), self.sample_col]
            raise AlignmentError(f"Duplicate sample ids in metadata: {dupes.tolist()}")

        self.metadata_df = metadata.set_index(self.sample_col)

        logger.info(f"Loaded metadata for {len(self.metadata_df)} samples")
        logger.info(
            "Samples per day/condition:\n"
            f"{self.metadata_df.groupby([self.day_col, self.condition_col]).size()}"
        )
        return self.metadata_df

    def load_gene_metadata(self) -> Optional[pd.DataFrame]:
        """Load optional gene annotation (passed through untouched)."""
        if self.genes_file is None:
            return None

        self.genes_df = pd.read_csv(self.genes_file, index_col=0)
        self.genes_df.index = self.genes_df.index.astype(str)
        self.genes_df.index.name = 'gene_id'
        logger.info(f"Loaded annotation for {len(self.genes_df)} genes")
        return self.genes_df

    def clean(self, outlier_samples: Iterable[str] = ()) -> CleanDataset:
        """
        Remove outliers and align counts with metadata.

        Raises
        ------
        AlignmentError
            If the remaining count columns and metadata sample ids differ.
        """
        if self.counts_df is None:
            self.load_counts()
        if self.metadata_df is None:
            self.load_sample_metadata()

        outliers = {self.strip_suffix(s) for s in outlier_samples}
        for sample_id in sorted(outliers):
            if sample_id not in self.metadata_df.index and sample_id not in self.counts_df.columns:
                logger.warning(f"Outlier sample {sample_id} not present in dataset")
            else:
                logger.info(f"Removing outlier sample {sample_id}")

        metadata = self.metadata_df.drop(index=list(outliers), errors='ignore')
        counts = self.counts_df.drop(columns=list(outliers), errors='ignore')

        only_counts = sorted(set(counts.columns) - set(metadata.index))
        only_metadata = sorted(set(metadata.index) - set(counts.columns))
        if only_counts or only_metadata:
            raise AlignmentError(
                "Counts and sample metadata are not aligned: "
                f"{len(only_counts)} samples only in counts {only_counts[:10]}, "
                f"{len(only_metadata)} samples only in metadata {only_metadata[:10]}"
            )

        counts = counts[metadata.index]

        logger.info(f"Clean dataset: {counts.shape[0]} genes x {counts.shape[1]} samples")
        return CleanDataset(counts=counts, samples=metadata, genes=self.genes_df)

    def load(self, outlier_samples: Iterable[str] = ()) -> CleanDataset:
        """Load every table and return the cleaned dataset."""
        self.load_counts()
        self.load_sample_metadata()
        self.load_gene_metadata()
        return self.clean(outlier_samples)
