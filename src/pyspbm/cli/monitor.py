#!/usr/bin/env python3
"""Power monitor for DGX Spark SPBM telemetry.

Samples power channels once per interval and prints them as a table or
CSV stream. Values come from the kernel ``spbm`` hwmon device when it is
loaded, or directly from the mapped SPBM window otherwise.

Usage:
    spbm-monitor                               # table, until Ctrl-C
    spbm-monitor --csv ./bench arg1 > log.csv  # sample while ./bench runs
    spbm-monitor --list                        # every channel once
    spbm-monitor --help
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TextIO

from pyspbm import __version__
from pyspbm.binding import DeviceBinding
from pyspbm.config import SpbmConfig
from pyspbm.exceptions import ResourceNotFoundError, SpbmError
from pyspbm.factory import create_binding, create_snapshot_binding
from pyspbm.monitor import (
    DEFAULT_METRICS,
    CsvFormatter,
    DirectSource,
    SampleSource,
    SysfsSource,
    TableFormatter,
    format_snapshot,
    run_monitor,
    validate_metrics,
)
from pyspbm.sysfs import HwmonSysfsReader, find_hwmon_dir

_LOGGER = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="spbm-monitor",
        description="Sample DGX Spark SPBM power telemetry at a fixed interval.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
If a program is given, it is run and power is sampled until it exits;
the monitor then exits with the program's status. Otherwise sampling
continues until interrupted.

Metrics sampled by default:
  {", ".join(DEFAULT_METRICS)}

Examples:
  spbm-monitor
      Continuously output power data in table mode

  spbm-monitor --csv ./some_program arg1 arg2 > log.csv
      Run some_program and save power data in CSV format to log.csv

  spbm-monitor --dump spbm.bin
      Save the raw 4 KiB telemetry window for offline analysis

  spbm-monitor --snapshot spbm.bin --list
      Show every channel from a saved window
""",
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--csv",
        action="store_true",
        help="Output in CSV format (default is table mode)",
    )
    parser.add_argument(
        "--interval",
        "-i",
        type=float,
        default=None,
        help="Seconds between samples (default: 1.0, or SPBM_INTERVAL)",
    )
    parser.add_argument(
        "--count",
        "-n",
        type=int,
        default=None,
        help="Stop after this many samples",
    )
    parser.add_argument(
        "--metrics",
        "-m",
        default=",".join(DEFAULT_METRICS),
        help="Comma-separated power channel labels (default: %(default)s)",
    )

    source_group = parser.add_argument_group("Source Options")
    source_group.add_argument(
        "--source",
        "-s",
        choices=["auto", "sysfs", "direct"],
        default="auto",
        help="Read hwmon sysfs, map the window directly, or try sysfs first (default)",
    )
    source_group.add_argument(
        "--snapshot",
        type=Path,
        help="Read from a raw window dump instead of live hardware",
    )
    source_group.add_argument(
        "--env-file",
        type=Path,
        help="Load SPBM_* settings from a .env file",
    )

    action_group = parser.add_argument_group("One-shot Actions")
    action_group.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="Print every power and energy channel once and exit",
    )
    action_group.add_argument(
        "--dump",
        type=Path,
        help="Write the raw telemetry window to a file and exit",
    )

    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "program",
        nargs=argparse.REMAINDER,
        help="Program (and arguments) to run while sampling",
    )
    return parser


def _open_binding(args: argparse.Namespace, config: SpbmConfig) -> DeviceBinding:
    if args.snapshot is not None:
        return create_snapshot_binding(args.snapshot)
    return create_binding(config)


def _find_hwmon(args: argparse.Namespace, config: SpbmConfig) -> Path | None:
    """Return the loaded driver's hwmon directory, or None to map the window."""
    if args.snapshot is not None or args.source == "direct":
        return None
    try:
        return find_hwmon_dir(config.hwmon_name, config.hwmon_root)
    except ResourceNotFoundError:
        if args.source == "sysfs":
            raise
        _LOGGER.info("No %s hwmon device, mapping the window directly", config.hwmon_name)
        return None


def _open_source(
    args: argparse.Namespace, config: SpbmConfig, labels: list[str]
) -> tuple[SampleSource, DeviceBinding | None]:
    """Pick the sample source; returns the binding to release, if any."""
    hwmon_dir = _find_hwmon(args, config)
    if hwmon_dir is not None:
        return SysfsSource(HwmonSysfsReader(hwmon_dir), labels), None

    binding = _open_binding(args, config)
    return DirectSource(binding, labels), binding


async def _run(
    args: argparse.Namespace,
    source: SampleSource,
    interval: float,
    stream: TextIO,
) -> int:
    formatter = CsvFormatter(source.labels) if args.csv else TableFormatter(source.labels)

    if not args.program:
        await run_monitor(
            source, formatter, interval=interval, stream=stream, max_samples=args.count
        )
        return 0

    process = await asyncio.create_subprocess_exec(*args.program)
    try:
        await run_monitor(
            source,
            formatter,
            interval=interval,
            stream=stream,
            process=process,
            max_samples=args.count,
        )
    finally:
        returncode = await process.wait()
    return returncode


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        labels = validate_metrics(m.strip() for m in args.metrics.split(",") if m.strip())
    except ValueError as err:
        parser.error(str(err))

    try:
        config = SpbmConfig.from_env(args.env_file)
        if args.interval is not None:
            config.interval = args.interval
        config.validate()
    except ValueError as err:
        parser.error(str(err))

    binding: DeviceBinding | None = None
    try:
        if args.dump is not None:
            with _open_binding(args, config) as dump_binding:
                data = dump_binding.dump()
            args.dump.write_bytes(data)
            print(f"Wrote {len(data)} bytes to {args.dump}")
            return 0

        if args.list:
            hwmon_dir = _find_hwmon(args, config)
            if hwmon_dir is not None:
                snapshot = HwmonSysfsReader(hwmon_dir).snapshot()
            else:
                with _open_binding(args, config) as list_binding:
                    if not list_binding.telemetry_active:
                        print("Warning: SYS_TOTAL reads a sentinel, telemetry may be inactive")
                    snapshot = list_binding.snapshot()
            for line in format_snapshot(snapshot):
                print(line)
            return 0

        source, binding = _open_source(args, config, labels)
        return asyncio.run(_run(args, source, config.interval, sys.stdout))
    except SpbmError as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0
    finally:
        if binding is not None:
            binding.unbind()


if __name__ == "__main__":
    sys.exit(main())
