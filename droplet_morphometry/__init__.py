"""
Lipid-droplet morphometry.

Merges per-droplet coordinate and shape-descriptor exports, consolidates
specimens into cohorts, summarises each specimen, and compares an
experimental cohort against a control baseline of mean droplet diameter
versus total droplet area.
"""

__version__ = "1.0.0"

from .config import Config
from .analysis.main_pipeline import DropletAnalysisPipeline, run_complete_analysis

__all__ = ['Config', 'DropletAnalysisPipeline', 'run_complete_analysis', '__version__']
