"""
cli.py
~~~~~~

Command line entry point.

Usage:
    python -m digitnet --mode train [--alpha 0.05] [--hidden_func tanh]
    python -m digitnet --mode eval
"""

import argparse
import logging
import sys
from typing import List, Optional

from digitnet.config import DataPaths, NetworkConfig, configure_logging
from digitnet.data_table import DataTable
from digitnet.errors import DigitNetError
from digitnet.submission import create_submission, load_trained_network
from digitnet.training import train

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    defaults = NetworkConfig()
    paths = DataPaths.from_env()

    parser = argparse.ArgumentParser(
        prog='digitnet',
        description="Train or apply a one-hidden-layer digit classifier."
    )
    parser.add_argument('-m', '--mode', choices=['train', 'eval'], default=defaults.mode,
                        help="Train new weights or classify the eval set.")
    parser.add_argument('-a', '--alpha', type=float, default=defaults.alpha,
                        help="Learning rate.")
    parser.add_argument('--hidden_func', choices=['sigmoid', 'tanh'],
                        default=defaults.hidden_func, help="Hidden layer activation.")
    parser.add_argument('--output_func', choices=['softmax'],
                        default=defaults.output_func, help="Output layer activation.")
    parser.add_argument('--hidden_nodes', type=int, default=defaults.hidden_nodes,
                        help="Number of hidden nodes.")
    parser.add_argument('--min_iterations', type=int, default=defaults.min_iterations,
                        help="Iterations before early stopping may trigger.")
    parser.add_argument('--ratio_threshold', type=float,
                        default=defaults.accuracy_ratio_threshold,
                        help="Stop once short/long accuracy ratio drops below this.")
    parser.add_argument('--max_iterations', type=int, default=None,
                        help="Hard bound on training iterations.")
    parser.add_argument('--log_every', type=int, default=defaults.log_every,
                        help="Iterations between progress reports.")
    parser.add_argument('--seed', type=int, default=None, help="Random seed.")
    parser.add_argument('--resume', action='store_true',
                        help="Continue from the saved weights of --run_id.")
    parser.add_argument('--run_id', default='default',
                        help="Name the weights are saved and loaded under.")
    parser.add_argument('--data_dir', default=paths.data_dir,
                        help="Directory holding datasets and outputs.")
    parser.add_argument('--model_dir', default=paths.model_dir,
                        help="Directory holding the weight database.")
    parser.add_argument('--eval_csv', default=None,
                        help="Unlabeled CSV to classify (default: <data_dir>/manual_test_set.csv).")
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> NetworkConfig:
    return NetworkConfig(
        mode=args.mode,
        alpha=args.alpha,
        hidden_func=args.hidden_func,
        output_func=args.output_func,
        hidden_nodes=args.hidden_nodes,
        min_iterations=args.min_iterations,
        accuracy_ratio_threshold=args.ratio_threshold,
        max_iterations=args.max_iterations,
        log_every=args.log_every,
        seed=args.seed,
    ).validate()


def run(args: argparse.Namespace) -> None:
    config = config_from_args(args)
    paths = DataPaths(data_dir=args.data_dir, model_dir=args.model_dir)

    for key, value in config.to_dict().items():
        logger.info(f"{key} set to {value}")

    if config.mode == 'train':
        table = DataTable.load_or_build(paths.train_cache, paths.train_csv)
        train(table, config, run_id=args.run_id, model_dir=paths.model_dir,
              resume=args.resume)
    else:
        network = load_trained_network(args.run_id, paths.model_dir, config)
        table = DataTable.from_csv(args.eval_csv or paths.eval_csv, label_index=None)
        create_submission(network, table, paths.submission_csv)


def main(argv: Optional[List[str]] = None) -> int:
    configure_logging()
    args = parse_args(argv)
    try:
        run(args)
    except DigitNetError as e:
        logger.error(f"{args.mode} failed: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
