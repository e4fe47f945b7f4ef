#!/usr/bin/env python3
"""
MIMO Update CLI

Command-line interface for system and storage-target updates.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from mimo_common.exceptions import ActionFailedError, MimoError, RollbackError
from mimo_common.logging_config import get_logger, setup_logging
from mimo_utils.atomic_write import atomic_write_text

from .config import generate_init_config, load_file_ops_config
from .context import UpdateContext
from .updater import UpdateManager, UpdateStatus

logger = get_logger("cli")


def confirm(prompt: str) -> bool:
    """Ask a yes/no question on the terminal; anything but y/yes is no."""
    try:
        response = input(prompt)
    except EOFError:
        return False
    return response.strip().lower() in ("y", "yes")


def progress_callback(status: UpdateStatus, message: str):
    """Display update progress."""
    logger.info(f"[{status.value}] {message}")


def _build_context(args) -> UpdateContext:
    overrides = {}
    if getattr(args, "bundle", None):
        overrides["bundle_archive"] = Path(args.bundle)
    if getattr(args, "work_dir", None):
        overrides["work_dir"] = Path(args.work_dir)
    return UpdateContext.from_environment(**overrides)


def cmd_update(args):
    """Run a system or target update."""
    context = _build_context(args)
    manager = UpdateManager(
        context,
        confirm=(lambda _prompt: True) if args.yes else confirm,
    )
    manager.set_progress_callback(progress_callback)

    if args.sys:
        logger.info("Running system update")
        manager.run_system_update()
        logger.info("System update completed successfully")
        return 0

    logger.info("Running target update")
    if not manager.run_target_update():
        logger.info("Update cancelled")
        return 0
    logger.info("Target update completed successfully")
    return 0


def cmd_verify(args):
    """Check the resource bundle against its checksum."""
    context = _build_context(args)
    manager = UpdateManager(context)
    manager.bundle.verify()
    print(f"{manager.bundle.archive}: OK")
    return 0


def cmd_init_config(args):
    """Generate an init-file configuration from a mapping file."""
    config = load_file_ops_config(args.mapping)
    init_config = generate_init_config(config.file_mappings)
    text = json.dumps(init_config.to_dict(), indent=2) + "\n"

    if args.output:
        atomic_write_text(Path(args.output), text)
        logger.info(f"Wrote {len(init_config.files)} init files to {args.output}")
    else:
        sys.stdout.write(text)
    return 0


def _report(error: MimoError):
    if isinstance(error, (ActionFailedError, RollbackError)):
        for line in error.lines():
            logger.error(line)
    else:
        logger.error(str(error))
    logger.debug("Failure details", exc_info=error)
    if error.recoverable:
        logger.info("The operation can be retried")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mimo-update",
        description="MIMO system and storage target updater",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mimo-update update --sys               # Install the bundled system files
  mimo-update update --target -y         # Replace the storage target, no prompts
  mimo-update verify --bundle ./resources.tar.gz
  mimo-update init-config mapping.json -o init.json
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--log-file", help="Also write a DEBUG log to this file")
    parser.add_argument("--json-logs", action="store_true", help="Write the log file as JSON")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # update command
    update_parser = subparsers.add_parser("update", help="Apply an update")
    mode = update_parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--sys", action="store_true", help="System update")
    mode.add_argument("--target", action="store_true", help="Storage target update")
    update_parser.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    update_parser.add_argument("--bundle", help="Path to resources.tar.gz")
    update_parser.add_argument("--work-dir", help="Directory to unpack the bundle into")
    update_parser.set_defaults(func=cmd_update)

    # verify command
    verify_parser = subparsers.add_parser("verify", help="Verify the resource bundle")
    verify_parser.add_argument("--bundle", help="Path to resources.tar.gz")
    verify_parser.set_defaults(func=cmd_verify)

    # init-config command
    init_parser = subparsers.add_parser("init-config", help="Generate an init-file configuration")
    init_parser.add_argument("mapping", metavar="MAPPING_JSON",
                             help="JSON file with file_mappings")
    init_parser.add_argument("-o", "--output", help="Output file (default: stdout)")
    init_parser.set_defaults(func=cmd_init_config)

    return parser


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(
        level=level,
        log_file=Path(args.log_file) if args.log_file else None,
        json_logs=args.json_logs,
    )

    if args.command is None:
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except MimoError as e:
        _report(e)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
