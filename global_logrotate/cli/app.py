"""Command-line entry point for global-logrotate."""

import argparse
import logging
import sys

from global_logrotate.config import defaults
from global_logrotate.config.settings import (
    ConfigError,
    EffectiveConfig,
    load_config_files,
    resolve_config,
    validate_for_rotation,
)
from global_logrotate.discovery.file_finder import find_log_files, load_exclude_patterns
from global_logrotate.reader.archive_reader import ReadError, read_archive
from global_logrotate.rotation.rotation_engine import RotationEngine
from global_logrotate.runtime.context import RunContext
from global_logrotate.security.credentials import CredentialResolver
from global_logrotate.security.password_setup import PasswordSetup, PasswordSetupError

logger = logging.getLogger("global_logrotate.cli")

EPILOG = f"""\
log levels:
  error (0)  only errors
  info  (1)  errors and general information (default)
  debug (2)  all messages including debug details

configuration files:
  {defaults.MAIN_CONFIG_FILE}
  {defaults.CONFIG_DROPIN_DIR}/*.conf

examples:
  {defaults.PROG_NAME} -D -p /var/log/myapp                    # basic rotation
  {defaults.PROG_NAME} --pass-gen                              # setup encryption
  {defaults.PROG_NAME} --encrypt -D -p /var/log/secure         # rotate with encryption
  {defaults.PROG_NAME} --read /path/to/file.gz.enc             # read encrypted log
  {defaults.PROG_NAME} -D -p /var/log/apps --log-level debug   # with debug logging
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=defaults.PROG_NAME,
        description="Rotate, compress and optionally encrypt log files.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-H", dest="full_time", action="store_true",
                        help="Use full timestamp format (YYYYMMDDTHH:MM:SS)")
    parser.add_argument("-D", dest="date_only", action="store_true",
                        help="Use date-only format (YYYYMMDD)")
    parser.add_argument("--pattern", default=None,
                        help=f"File pattern to rotate (default: {defaults.DEFAULT_PATTERN})")
    parser.add_argument("-p", dest="log_dir", default=None,
                        help=f"Custom log directory (default: {defaults.DEFAULT_LOG_DIR})")
    parser.add_argument("-n", dest="dry_run", action="store_true",
                        help="Dry-run mode (no changes made)")
    parser.add_argument("-o", dest="old_logs_dir", default=None,
                        help="old_logs directory (default: <logdir>/old_logs)")
    parser.add_argument("--exclude-from", dest="exclude_file", default=None,
                        help="Path to file containing exclude patterns")
    parser.add_argument("--parallel", dest="parallel_jobs", type=int, default=None,
                        metavar="N",
                        help=f"Rotate up to N log files in parallel (default: {defaults.DEFAULT_JOBS})")
    parser.add_argument("--encrypt", action="store_true",
                        help="Encrypt rotated logs with AES-256-GCM")
    parser.add_argument("--read", dest="read_file", default=None, metavar="FILE",
                        help="Read a rotated log file (.gz or .gz.enc)")
    parser.add_argument("--pass-gen", action="store_true",
                        help="Generate and configure encryption password (first-time setup)")
    parser.add_argument("--pass-reset", action="store_true",
                        help="Reset/change encryption password")
    parser.add_argument("--log-file", default=None,
                        help=f"Path to log file (default: {defaults.DEFAULT_LOG_FILE})")
    parser.add_argument("--log-level", default=None,
                        choices=["error", "info", "debug", "0", "1", "2"],
                        help="Log level: error, info, debug (default: info)")
    parser.add_argument("--version", action="version",
                        version=f"{defaults.PROG_NAME} version {defaults.VERSION}")
    return parser


def config_from_args(args: argparse.Namespace) -> EffectiveConfig:
    values = load_config_files()
    return resolve_config(
        values,
        log_dir=args.log_dir,
        pattern=args.pattern,
        exclude_file=args.exclude_file,
        parallel_jobs=args.parallel_jobs,
        dry_run=args.dry_run,
        old_logs_dir=args.old_logs_dir,
        encrypt=args.encrypt,
        log_file=args.log_file,
        log_level=args.log_level,
        full_time=args.full_time,
        date_only=args.date_only,
    )


def run_read(path: str, cfg: EffectiveConfig) -> int:
    resolver = CredentialResolver(cfg, prompt_text="Enter decryption password: ")
    try:
        content = read_archive(path, resolver)
    except ReadError as exc:
        print(f"Error reading file: {exc}", file=sys.stderr)
        return 1
    sys.stdout.flush()
    sys.stdout.buffer.write(content)
    sys.stdout.buffer.flush()
    return 0


def run_password_flow(reset: bool) -> int:
    setup = PasswordSetup()
    try:
        if reset:
            setup.reset()
        else:
            setup.generate()
    except PasswordSetupError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


def _print_encrypt_setup_hint():
    print("", file=sys.stderr)
    print("First-time setup required! Run:", file=sys.stderr)
    print(f"  {defaults.PROG_NAME} --pass-gen", file=sys.stderr)
    print("", file=sys.stderr)
    print("Or to reset existing password:", file=sys.stderr)
    print(f"  {defaults.PROG_NAME} --pass-reset", file=sys.stderr)


def run_rotation(cfg: EffectiveConfig, ctx: RunContext) -> int:
    """Discover and rotate. Returns the process exit code."""
    try:
        validate_for_rotation(cfg)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        logger.error("%s", exc)
        if cfg.encrypt and not cfg.encrypt_password and not cfg.encrypt_password_hash:
            _print_encrypt_setup_hint()
        return 1

    logger.info("Starting rotation - Dir: %s, Pattern: %s, Encrypt: %s, DryRun: %s",
                cfg.log_dir, cfg.pattern, cfg.encrypt, cfg.dry_run)

    try:
        excludes = load_exclude_patterns(cfg.exclude_file)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        logger.error("%s", exc)
        return 1

    files = find_log_files(cfg.log_dir, cfg.pattern, excludes)
    if not files:
        print(f"No files matching pattern '{cfg.pattern}' found in {cfg.log_dir}")
        logger.info("No files matching pattern '%s' found in %s", cfg.pattern, cfg.log_dir)
        return 0

    logger.info("Found %d files to rotate", len(files))
    logger.debug("Files: %s", [c.path for c in files])

    RotationEngine(cfg, ctx).rotate(files)
    logger.info("Rotation completed")
    return 0


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)

    if args.pass_gen:
        return run_password_flow(reset=False)
    if args.pass_reset:
        return run_password_flow(reset=True)

    cfg = config_from_args(args)
    if args.read_file:
        return run_read(args.read_file, cfg)

    with RunContext(cfg) as ctx:
        return run_rotation(cfg, ctx)
