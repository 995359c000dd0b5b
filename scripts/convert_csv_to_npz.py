#!/usr/bin/env python3
"""
Convert the digit training CSV to the compressed NPZ cache.

Reading 42k rows of CSV on every training run is slow; training loads
data/train.npz first and only falls back to the CSV when the cache is
missing or corrupt. This script builds the cache ahead of time.

Usage:
    python scripts/convert_csv_to_npz.py [data_dir]

The script will:
1. Load data/mnist_digits/train.csv
2. Save it as data/train.npz
3. Verify the conversion was successful
"""

import os
import sys

import numpy as np

from digitnet.config import DataPaths
from digitnet.data_table import DataTable
from digitnet.errors import DataLoadError


def verify_conversion(npz_filepath: str, original: DataTable) -> bool:
    """
    Verify that the NPZ file contains the same data as the CSV.

    Parameters:
    -----------
    npz_filepath : str
        Path to the .npz file
    original : DataTable
        Table read from the CSV

    Returns:
    --------
    bool
        True if verification passes
    """
    print(f"\n🔍 Verifying conversion...")

    cached = DataTable.load(npz_filepath)
    assert np.array_equal(cached.features, original.features), \
        "Features don't match!"
    assert np.array_equal(cached.labels, original.labels), \
        "Labels don't match!"

    print("✅ Verification passed! Data is identical.")
    return True


def main():
    """Main conversion function."""
    print("=" * 60)
    print("Digit Dataset Converter")
    print("CSV → compressed NPZ cache")
    print("=" * 60)

    data_dir = sys.argv[1] if len(sys.argv) > 1 else DataPaths.from_env().data_dir
    paths = DataPaths(data_dir=data_dir)

    if not os.path.exists(paths.train_csv):
        print(f"❌ Error: CSV file not found: {paths.train_csv}")
        sys.exit(1)

    if os.path.exists(paths.train_cache):
        response = input(f"\n⚠️  {paths.train_cache} already exists. Overwrite? (y/N): ")
        if response.lower() != 'y':
            print("❌ Conversion cancelled.")
            sys.exit(0)

    try:
        print(f"📂 Loading digits from: {paths.train_csv}")
        table = DataTable.from_csv(paths.train_csv, label_index=0)
        print(f"✅ Loaded {len(table)} labeled images")

        print(f"\n💾 Converting to NPZ format: {paths.train_cache}")
        table.persist(paths.train_cache)
        npz_size = os.path.getsize(paths.train_cache) / (1024 * 1024)  # MB
        print(f"✅ Saved successfully (size: {npz_size:.2f} MB)")

        verify_conversion(paths.train_cache, table)

        print("\n" + "=" * 60)
        print("✅ CONVERSION COMPLETE!")
        print("=" * 60)

    except (DataLoadError, AssertionError) as e:
        print(f"\n❌ Error during conversion: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
