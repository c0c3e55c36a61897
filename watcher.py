from __future__ import annotations

import argparse
import logging
import os
import time
from logging.handlers import RotatingFileHandler

from intake.config import ArchivePolicy
from intake.console import ControlConsole
from intake.errors import IntakeError
from intake.formats import Format
from intake.processor import (
    DEFAULT_ARCHIVE_DIR,
    DEFAULT_EXPORT_DELAY,
    DEFAULT_EXPORT_INTERVAL,
    DEFAULT_INPUT_DIR,
    DEFAULT_OUTPUT_DIR,
    FileIntakeProcessor,
)

DEFAULT_LOG_DIR = "./logs"
LOGGER_NAME = "intake"


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def setup_logger(logfile: str) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")

    # Rotating file handler to avoid unbounded log growth
    handler = RotatingFileHandler(logfile, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    return logger


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Watch a folder for new data files, process them by format and run scheduled exports"
    )
    parser.add_argument("--input", "-i", default=DEFAULT_INPUT_DIR, help=f"Directory to watch (default {DEFAULT_INPUT_DIR})")
    parser.add_argument("--output", "-o", default=DEFAULT_OUTPUT_DIR, help=f"Directory for exports, conversions and backups (default {DEFAULT_OUTPUT_DIR})")
    parser.add_argument("--archive", "-a", default=DEFAULT_ARCHIVE_DIR, help=f"Directory processed files are moved to (default {DEFAULT_ARCHIVE_DIR})")
    parser.add_argument("--logdir", "-l", default=DEFAULT_LOG_DIR, help=f"Directory to write logs to (default {DEFAULT_LOG_DIR})")
    parser.add_argument("--settle", type=float, default=0.5, help="Seconds to wait after a new file appears, and between file-size checks")
    parser.add_argument("--tries", type=int, default=10, help="Number of settle checks before processing a file that is still growing")
    parser.add_argument("--export-interval", type=float, default=DEFAULT_EXPORT_INTERVAL, help="Seconds between scheduled exports")
    parser.add_argument("--export-delay", type=float, default=DEFAULT_EXPORT_DELAY, help="Seconds before the first scheduled export")
    parser.add_argument(
        "--export-format",
        default=Format.CSV.value,
        choices=[f.value for f in Format if f is not Format.BINARY],
        help="Format of scheduled exports",
    )
    parser.add_argument(
        "--archive-policy",
        default=ArchivePolicy.OVERWRITE.value,
        choices=[p.value for p in ArchivePolicy],
        help="What to do when the archive already holds a file with the same name",
    )
    parser.add_argument("--no-backup", action="store_true", help="Do not back up files before processing")
    parser.add_argument("--no-archive", action="store_true", help="Leave processed files in the input directory")
    parser.add_argument("--convert", action="store_true", help="Convert csv to json and spreadsheets to csv")
    parser.add_argument("--enable-binary", action="store_true", help="Process .bin/.ser/.pkl files by unpickling them (trusted input directories only)")
    parser.add_argument("--no-console", action="store_true", help="Start immediately and run until interrupted, without the command prompt")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    log_dir = os.path.abspath(args.logdir)
    ensure_dir(log_dir)
    logfile = os.path.join(log_dir, "file_intake.log")
    logger = setup_logger(logfile)

    logger.info("Starting file intake processor")
    logger.info("Logging to: %s", logfile)

    try:
        processor = FileIntakeProcessor(
            os.path.abspath(args.input),
            os.path.abspath(args.output),
            os.path.abspath(args.archive),
            archive_enabled=not args.no_archive,
            backup_enabled=not args.no_backup,
            convert_to_canonical=args.convert,
            archive_policy=args.archive_policy,
            enable_binary=args.enable_binary,
            settle_seconds=args.settle,
            max_tries=args.tries,
            logger=logger,
        )
    except IntakeError:
        logger.exception("Could not set up processor")
        return 1

    schedule_options = {
        "interval": args.export_interval,
        "initial_delay": args.export_delay,
        "export_format": args.export_format,
    }

    if not args.no_console:
        try:
            ControlConsole(processor, schedule_options=schedule_options).run()
        except KeyboardInterrupt:
            logger.info("Shutdown requested")
            processor.stop()
        logger.info("Stopped")
        return 0

    try:
        processor.start(**schedule_options)
    except IntakeError:
        logger.exception("Could not start processor")
        processor.stop()
        return 1

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutdown requested, stopping processor")
    processor.stop()
    logger.info("Stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
