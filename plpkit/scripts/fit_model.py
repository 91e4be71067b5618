"""
CLI script for fitting a patient-level prediction model.

Usage:
    # Lasso logistic regression from a settings file
    python -m plpkit.scripts.fit_model --population pop.csv --covariates cov.csv \
        --settings lasso.yaml --output-dir out/lasso

    # Settings files are written by ModelSettings.save(), e.g.
    #   LogisticRegressionPlugin().set(C=[0.01, 0.1]).save("lasso.yaml")
"""

import argparse
import logging
from pathlib import Path
import sys

import pandas as pd

from plpkit.config import FrameworkConfig, get_config
from plpkit.data import FOLD, PlpData, assign_folds
from plpkit.exceptions import PlpKitError
from plpkit.persistence import save_fit_result
from plpkit.registry import fit_plp, predict_plp
from plpkit.types import ModelSettings

logger = logging.getLogger(__name__)


def setup_logging(output_dir: Path, level: str = "INFO"):
    output_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(output_dir / "fit_model.log"),
        ],
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fit a patient-level prediction model with cross-validated grid search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Fit with the settings in lasso.yaml, three folds assigned on the fly
    python -m plpkit.scripts.fit_model --population pop.csv --covariates cov.csv \\
        --settings lasso.yaml --output-dir out/lasso --n-folds 3

    # Use a framework config file (artifact root, session timeout, ...)
    python -m plpkit.scripts.fit_model --population pop.csv --covariates cov.csv \\
        --settings rnn.yaml --output-dir out/rnn --config plpkit.yaml
        """,
    )

    # Data
    parser.add_argument(
        "--population",
        type=Path,
        required=True,
        help="CSV with rowId, outcomeCount and optionally indexes",
    )
    parser.add_argument(
        "--covariates",
        type=Path,
        required=True,
        help="CSV with rowId, covariateId, covariateValue (and timeId for sequence models)",
    )
    parser.add_argument(
        "--covariate-ref",
        type=Path,
        help="CSV with covariateId, covariateName",
    )

    # Model
    parser.add_argument(
        "--settings",
        type=Path,
        required=True,
        help="Model settings YAML written by ModelSettings.save()",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        required=True,
        help="Directory for the saved fit result, predictions, search records and log",
    )

    # Framework
    parser.add_argument(
        "--config",
        type=Path,
        help="Load framework configuration from YAML file",
    )
    parser.add_argument(
        "--n-folds",
        type=int,
        help="Folds to assign when the population has no indexes column "
             "(default: config.n_folds)",
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    config = get_config()
    if args.config:
        for key, value in vars(FrameworkConfig.load(args.config)).items():
            setattr(config, key, value)
    if args.n_folds is not None:
        config.n_folds = args.n_folds
    config.search_log_dir = args.output_dir

    setup_logging(args.output_dir, config.log_level)
    for warning in config.validate():
        logger.warning(warning)

    try:
        population = pd.read_csv(args.population)
        covariates = pd.read_csv(args.covariates)
        covariate_ref = pd.read_csv(args.covariate_ref) if args.covariate_ref else None
        model_settings = ModelSettings.load(args.settings)

        if FOLD not in population.columns and config.n_folds >= 2:
            logger.info(f"Assigning {config.n_folds} folds (seed={config.random_seed})")
            population = assign_folds(population, config.n_folds, config.random_seed)

        plp_data = PlpData(
            covariates=covariates,
            covariate_ref=covariate_ref,
            metadata={"population": str(args.population), "covariates": str(args.covariates)},
        )

        result = fit_plp(
            population,
            plp_data,
            model_settings,
            artifact_root=config.artifact_root,
        )
        save_fit_result(result, args.output_dir / "model")

        prediction = predict_plp(result, population, plp_data)
        prediction.to_csv(args.output_dir / "prediction.csv", index=False)
    except PlpKitError as e:
        logger.error(f"Fit failed: {e}")
        return 1

    logger.info(f"Chosen configuration: {result.chosen_configuration.to_dict()}")
    logger.info(f"Results saved to {args.output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
