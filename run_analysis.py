#!/usr/bin/env python3
"""
Droplet Morphometry Analysis Runner

Runs the complete pipeline for one control and one experimental cohort:
merge, consolidate, strip coordinates, summarise, fit the control baseline,
evaluate experimental deviations and compare the two distributions.
"""

import argparse
import logging
import sys

from droplet_morphometry.analysis.error_handling import DropletAnalysisError
from droplet_morphometry.analysis.main_pipeline import DropletAnalysisPipeline
from droplet_morphometry.config import Config


def setup_logging(config: Config, verbose: bool = False):
    """Configure root logging from the ``logging`` config section."""
    level = logging.DEBUG if verbose else getattr(logging, config.logging.level)
    logging.basicConfig(level=level, format=config.logging.format)


def main(argv=None) -> int:
    """Main execution function."""
    parser = argparse.ArgumentParser(
        description='Lipid-droplet morphometry: control baseline vs experimental cohort',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_analysis.py --control data/control --experimental data/treated --output results/
  python run_analysis.py --config custom.json --control ... --experimental ... --output ...
  python run_analysis.py --skip-merge ...     # Reuse final_merged_csv.csv files already present
        """
    )
    parser.add_argument('--config', default='config.json',
                        help='Configuration file path (default: config.json)')
    parser.add_argument('--control', required=True,
                        help='Control cohort root (one folder per specimen)')
    parser.add_argument('--experimental', required=True,
                        help='Experimental cohort root (one folder per specimen)')
    parser.add_argument('--output', required=True,
                        help='Output directory for all derived tables')
    parser.add_argument('--skip-merge', action='store_true',
                        help='Do not merge raw sources; use existing merged files')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose output')
    args = parser.parse_args(argv)

    config = Config(args.config)
    setup_logging(config, args.verbose)
    logger = logging.getLogger('DropletAnalysis')
    logger.info(f"Loaded configuration from {args.config}")

    try:
        pipeline = DropletAnalysisPipeline(config)
        summary = pipeline.run(
            args.control,
            args.experimental,
            args.output,
            run_merge=not args.skip_merge
        )
    except DropletAnalysisError as e:
        logger.error(f"Analysis failed [{e.error_code}]: {e}")
        if e.pipeline_error.recovery_suggestion:
            logger.error(f"Suggestion: {e.pipeline_error.recovery_suggestion}")
        return 1

    comparison = summary['results']['comparison']
    logger.info("Analysis completed successfully!")
    logger.info(
        f"Welch t-test p = {comparison['location_test']['p_value']:.4g}, "
        f"KS test p = {comparison['shape_test']['p_value']:.4g}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
