#!/usr/bin/env python3
"""
Edgewatch - New-Market Edge Detector
====================================

Main entry point for running edgewatch.

Usage:
    python main.py
    python main.py --log-level DEBUG    # frame-level and research debug lines (console + file)
    python main.py --config-dir /etc/edgewatch

To see debug logging:
  - Run:  python main.py --log-level DEBUG
  - Or set in config:  system.log_level: "DEBUG"
  - Or set env:  export EDGEWATCH_LOG_LEVEL=DEBUG
"""

import argparse
import asyncio
import os


def _parse_args():
    p = argparse.ArgumentParser(description="Run edgewatch")
    p.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        metavar="LEVEL",
        help="Set log level for console and file. Default from config.",
    )
    p.add_argument(
        "--config-dir",
        default="config",
        help="Directory holding config.yaml and secrets.yaml (default: config)",
    )
    return p.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    if args.log_level:
        os.environ["EDGEWATCH_LOG_LEVEL"] = args.log_level
    try:
        from edgewatch.orchestrator import main
        asyncio.run(main(args.config_dir))
    except KeyboardInterrupt:
        print("\nedgewatch stopped by user")
