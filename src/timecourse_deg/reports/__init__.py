"""
Report generators: volcano plots, PCA and DEG heatmaps.
"""

from .volcano import VolcanoReportGenerator, annotate_de_results, volcano_file_names
from .pca import PCAReportGenerator, pca_analysis
from .heatmap import HeatmapReportGenerator, heatmap_file_name

__all__ = [
    'VolcanoReportGenerator',
    'annotate_de_results',
    'volcano_file_names',
    'PCAReportGenerator',
    'pca_analysis',
    'HeatmapReportGenerator',
    'heatmap_file_name'
]
