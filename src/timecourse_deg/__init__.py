"""
Time-Course Differential Expression Reports
===========================================

Compares treatment conditions against a shared control at several time
points and produces:
1. Volcano plots and all-gene DE tables per day and treatment
2. PCA plots per day
3. Clustered heatmaps of each condition's DEG union per day

Modules:
- preprocessing: loading, cleaning, subsetting and normalization
- de_analysis: pydeseq2 wrapper and DEG union across days
- reports: volcano, PCA and heatmap generators
- pipeline: batch driver and command line entry point
"""

__version__ = "1.0.0"
