"""
Time-Course Differential Expression Pipeline
============================================

Main pipeline script that orchestrates:
1. Data loading and cleaning
2. Volcano reports for every day x treatment
3. PCA reports for every day
4. DEG unions per condition and heatmaps for every day

Usage:
    timecourse-deg --config configs/config.yaml
    timecourse-deg --config configs/config.yaml --step volcano
"""

import argparse
import json
import yaml
from pathlib import Path
from typing import Dict, List, Optional
import logging
from datetime import datetime

from .context import AnalysisContext, StepResult, Thresholds, SkipReason, summarize
from .preprocessing.data_loader import TimeCourseDataLoader
from .preprocessing.normalization import compare_library_sizes
from .de_analysis.deg_union import DEGUnionAggregator
from .reports.volcano import VolcanoReportGenerator
from .reports.pca import PCAReportGenerator
from .reports.heatmap import HeatmapReportGenerator

logger = logging.getLogger(__name__)


class TimeCoursePipeline:
    """Volcano, PCA and heatmap reports for a treatment time course."""

    def __init__(self, config_path: str):
        """
        Initialize pipeline with configuration.

        Parameters
        ----------
        config_path : str
            Path to YAML configuration file
        """
        config_path = Path(config_path).resolve()
        with open(config_path, 'r') as f:
            self.config = yaml.safe_load(f)

        self.project_root = config_path.parent.parent
        output = self.config.get('output', {})
        self.results_dir = self._path(output.get('results_dir', 'results'))

        self.context: Optional[AnalysisContext] = None
        self.results: List[StepResult] = []
        self.deg_unions: Dict[str, StepResult] = {}

        logger.info(f"Initialized pipeline for: {self.config['project']['name']}")

    def _path(self, value: str) -> Path:
        path = Path(value)
        return path if path.is_absolute() else self.project_root / path

    def _record(self, result: StepResult) -> StepResult:
        self.results.append(result)
        if result.ok:
            logger.info(result.describe())
        else:
            logger.warning(result.describe())
        return result

    def step1_load_data(self) -> AnalysisContext:
        """Load, clean and align the dataset; alignment errors abort the run."""
        logger.info("=== Step 1: Loading Data ===")

        data = self.config['data']
        analysis = self.config['analysis']

        loader = TimeCourseDataLoader(
            counts_file=str(self._path(data['counts'])),
            samples_file=str(self._path(data['samples'])),
            genes_file=str(self._path(data['genes'])) if data.get('genes') else None,
            sample_suffix=data.get('sample_suffix', ''),
            sample_col=data.get('sample_col', 'sample_id'),
            day_col=data.get('day_col', 'day'),
            condition_col=data.get('condition_col', 'condition')
        )
        dataset = loader.load(outlier_samples=data.get('outlier_samples') or [])

        self.results_dir.mkdir(parents=True, exist_ok=True)
        compare_library_sizes(dataset.counts, dataset.samples).to_csv(
            self.results_dir / "library_sizes.csv", index=False
        )

        output = self.config.get('output', {})
        self.context = AnalysisContext(
            dataset=dataset,
            control=str(analysis['control']),
            days=tuple(str(d) for d in analysis['days']),
            conditions=tuple(str(c) for c in analysis['conditions']),
            output_dir=self.results_dir,
            thresholds=Thresholds.from_config(self.config.get('thresholds')),
            day_col=loader.day_col,
            condition_col=loader.condition_col,
            plot_format=output.get('plot_format', 'png'),
            cluster_genes=bool(analysis.get('cluster_genes', False)),
            condition_labels={str(k): str(v) for k, v in
                              (analysis.get('condition_labels') or {}).items()}
        )

        logger.info(f"Days: {list(self.context.days)}, conditions: "
                    f"{list(self.context.conditions)} vs control {self.context.control}")
        return self.context

    def _require_context(self) -> AnalysisContext:
        if self.context is None:
            self.step1_load_data()
        return self.context

    def step2_volcano_reports(self) -> List[StepResult]:
        """Volcano plot and all-gene table for every day x treatment."""
        logger.info("=== Step 2: Volcano Reports ===")
        ctx = self._require_context()
        generator = VolcanoReportGenerator(ctx)

        step_results = []
        for day in ctx.days:
            for treatment in ctx.conditions:
                step_results.append(self._record(generator.generate(day, treatment)))
        return step_results

    def step3_pca_reports(self) -> List[StepResult]:
        """PCA plot for every day."""
        logger.info("=== Step 3: PCA Reports ===")
        ctx = self._require_context()
        generator = PCAReportGenerator(ctx)
        return [self._record(generator.generate(day)) for day in ctx.days]

    def step4_heatmap_reports(self) -> List[StepResult]:
        """DEG union per condition, then a heatmap for every day."""
        logger.info("=== Step 4: DEG Unions and Heatmaps ===")
        ctx = self._require_context()
        generator = HeatmapReportGenerator(ctx)

        step_results = []
        for condition in ctx.conditions:
            aggregator = DEGUnionAggregator(ctx)
            union = aggregator.build(condition)
            if union.ok:
                path = aggregator.export(condition, union.value)
                union = StepResult.success(union.step, union.value,
                                           condition=condition, outputs=(path,))
            self.deg_unions[condition] = self._record(union)

            for day in ctx.days:
                if not union.ok:
                    result = StepResult.skipped(
                        'heatmap', SkipReason.EMPTY_RESULT,
                        f"no DEG union for {condition}: {union.message}",
                        day=day, condition=condition
                    )
                else:
                    result = generator.generate(day, condition, union.value,
                                                label=ctx.label_for(condition))
                step_results.append(self._record(result))
        return step_results

    def run_full_pipeline(self) -> List[StepResult]:
        """Run the complete analysis pipeline."""
        logger.info("=" * 60)
        logger.info("Starting Time-Course DE Report Pipeline")
        logger.info("=" * 60)

        start_time = datetime.now()

        self.step1_load_data()
        self.step2_volcano_reports()
        self.step3_pca_reports()
        self.step4_heatmap_reports()

        duration = datetime.now() - start_time

        logger.info("=" * 60)
        logger.info(f"Pipeline completed in {duration}")
        logger.info(f"Results saved to: {self.results_dir}")
        logger.info("=" * 60)

        self._generate_summary_report()
        return self.results

    def _generate_summary_report(self) -> Path:
        """Write every step outcome, including skip reasons, to JSON."""
        ctx = self.context
        summary = {
            'project': self.config['project']['name'],
            'date': datetime.now().isoformat(),
            'data': {
                'genes': ctx.dataset.n_genes if ctx else None,
                'samples': ctx.dataset.n_samples if ctx else None,
                'control': ctx.control if ctx else None,
                'days': list(ctx.days) if ctx else None,
                'conditions': list(ctx.conditions) if ctx else None
            },
            'deg_unions': {
                condition: len(r.value) if r.ok else 0
                for condition, r in self.deg_unions.items()
            },
            'steps': summarize(self.results),
            'results': [r.to_record() for r in self.results]
        }

        self.results_dir.mkdir(parents=True, exist_ok=True)
        path = self.results_dir / "pipeline_summary.json"
        with open(path, 'w') as f:
            json.dump(summary, f, indent=2, default=str)
        logger.info(f"Summary saved to {path}")
        return path


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Time-course differential expression reports')
    parser.add_argument(
        '--config',
        type=str,
        default='configs/config.yaml',
        help='Path to configuration file'
    )
    parser.add_argument(
        '--step',
        type=str,
        choices=['all', 'volcano', 'pca', 'heatmap'],
        default='all',
        help='Pipeline step to run'
    )
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    pipeline = TimeCoursePipeline(args.config)

    step_map = {
        'volcano': pipeline.step2_volcano_reports,
        'pca': pipeline.step3_pca_reports,
        'heatmap': pipeline.step4_heatmap_reports
    }

    if args.step == 'all':
        pipeline.run_full_pipeline()
    else:
        pipeline.step1_load_data()
        step_map[args.step]()
        pipeline._generate_summary_report()


if __name__ == "__main__":
    main()
