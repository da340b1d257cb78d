#!/usr/bin/env python
"""Power position reporting service runner."""

from __future__ import annotations

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "src"))

from cli.main import main


def run_from_file(config_file: str) -> int:
    if not os.path.exists(config_file):
        raise FileNotFoundError(f"Config file '{config_file}' not found.")
    return main(["run", "--config", config_file])


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python run_power_position.py <config_file>")
        sys.exit(1)
    config_path = sys.argv[1]
    if not os.path.exists(config_path):
        print(f"Error: Config file '{config_path}' not found.")
        sys.exit(1)
    sys.exit(run_from_file(config_path))
