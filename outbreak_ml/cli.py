# outbreak_ml/cli.py
import asyncio
import argparse
import sys
from pathlib import Path

from outbreak_ml.pipeline import OutbreakPipeline
from outbreak_ml.utils.logging_config import setup_logging
from outbreak_ml.config import get_config

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Outbreak human-impact classifier")
    parser.add_argument("--data-path", required=True, help="Path to the outbreak CSV")
    parser.add_argument("--config", help="Path to configuration file")
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS,
                        help="Logging level (overrides config)")
    parser.add_argument("--train-fraction", type=float, help="Fraction of rows used for training")
    parser.add_argument("--no-tracking", action="store_true", help="Disable MLflow tracking")
    parser.add_argument("--no-log-file", action="store_true", help="Log to the console only")
    return parser.parse_args(argv)

def print_summary(result: dict):
    """Print per-trial error rates, the selected trial and its top features"""
    evaluation = result['evaluation_results']
    for name, rate in evaluation['trial_error_rates'].items():
        print(f"{name} error rate: {rate:.4f}")

    print(f"Selected trial: {evaluation['trial_name']}")
    print(f"Test error rate: {evaluation['test_metrics']['error_rate']:.4f}")

    print("Top features:")
    for feature, importance in evaluation['top_features'].items():
        print(f"  {feature}: {importance:.4f}")

def main(argv=None):
    """Main entry point for the outbreak pipeline"""
    args = parse_args(argv)

    config = get_config(args.config)
    if args.train_fraction is not None:
        config.training.TRAIN_FRACTION = args.train_fraction
    if args.no_tracking:
        config.mlflow.ENABLED = False

    config.create_directories()
    setup_logging(
        log_level=args.log_level or config.logging_level,
        log_dir=str(config.paths.LOGS_DIR),
        log_to_file=not args.no_log_file
    )

    issues = config.validate_config()
    if issues:
        for issue in issues:
            print(f"Configuration error: {issue}")
        sys.exit(1)

    if not Path(args.data_path).exists():
        print(f"Error: Data file not found at {args.data_path}")
        sys.exit(1)

    pipeline = OutbreakPipeline(config)
    result = asyncio.run(pipeline.run_pipeline(args.data_path))

    if result.get('errors'):
        for error in result['errors']:
            print(f"Pipeline failed: {error}")
        sys.exit(1)

    print_summary(result)

if __name__ == "__main__":
    main()
