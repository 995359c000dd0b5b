#!/usr/bin/env python3
"""
Render digits as images and build a labelless eval set from them.

Usage:
    python scripts/render_digits.py [--wide 5] [--high 5]
    python scripts/render_digits.py --handmade handmade.png

Mosaic mode samples wide x high training digits, saves them tiled in
data/images/mnist.png and writes the sampled rows to
data/manual_test_set.csv. Handmade mode converts one 28x28 PNG into that
CSV instead. Either way, `python -m digitnet --mode eval` then classifies it.
"""

import argparse
import sys

import numpy as np

from digitnet.config import DataPaths
from digitnet.data_table import DataTable
from digitnet.errors import DigitNetError
from digitnet.imaging import build_mosaic, load_handmade


def main():
    parser = argparse.ArgumentParser(description="Render digits to images.")
    parser.add_argument('--wide', type=int, default=5, help="Digits per row.")
    parser.add_argument('--high', type=int, default=5, help="Digits per column.")
    parser.add_argument('--handmade', default=None, help="28x28 PNG to convert.")
    parser.add_argument('--seed', type=int, default=None, help="Random seed.")
    args = parser.parse_args()

    paths = DataPaths.from_env()

    try:
        if args.handmade:
            table = load_handmade(args.handmade, paths.eval_csv)
            print(f"✅ Converted {args.handmade} into {paths.eval_csv} ({len(table)} row)")
        else:
            table = DataTable.load_or_build(paths.train_cache, paths.train_csv)
            build_mosaic(
                table, args.wide, args.high,
                paths.mosaic_png, paths.eval_csv,
                rng=np.random.default_rng(args.seed)
            )
            print(f"✅ Saved {args.wide}x{args.high} mosaic to {paths.mosaic_png}")
            print(f"✅ Wrote sampled digits to {paths.eval_csv}")
    except DigitNetError as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
