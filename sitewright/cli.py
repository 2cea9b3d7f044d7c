#!/usr/bin/env python3
"""
Command-line interface for sitewright.
"""

import os
import sys
import time
import logging
import argparse
from datetime import datetime
from typing import List, Optional

from . import __version__
from .builder import Builder
from .errors import SiteError
from .server import DevServer
from .settings import SiteSettings, validate_settings
from .site import Site


def setup_logging(verbose: bool = False, log_dir: Optional[str] = None) -> logging.Logger:
    """Set up console logging and, when log_dir is given, a timestamped log file."""
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        logger.addHandler(console_handler)

        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
            log_filename = datetime.now().strftime('sitewright_%Y-%m-%d_%H-%M-%S.log')
            file_handler = logging.FileHandler(os.path.join(log_dir, log_filename))
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            logger.addHandler(file_handler)

    return logger


def _add_build_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('-s', '--source', type=str, help='Source directory (defaults to the current directory)')
    parser.add_argument('-d', '--destination', type=str, help='Destination directory (defaults to ./_site)')
    parser.add_argument('--config', type=str, help='Configuration file to use instead of _config.yml')
    parser.add_argument('-D', '--drafts', action='store_true', default=None, help='Render unpublished posts')
    parser.add_argument('--future', action='store_true', default=None, help='Render posts dated in the future')
    parser.add_argument('-I', '--incremental', action='store_true', default=None,
                        help='Only re-render documents that changed')
    parser.add_argument('--no-clean', action='store_true', help='Do not empty the destination first')
    parser.add_argument('-V', '--verbose', action='store_true', help='Print debug output')
    parser.add_argument('--timing', action='store_true', help='Print a per-step timing summary')
    parser.add_argument('--log-dir', type=str, help='Also write a debug log file into this directory')


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='sitewright', description='sitewright - static site builder')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    subparsers = parser.add_subparsers(dest='command')

    build_parser = subparsers.add_parser('build', help='Build the site')
    _add_build_arguments(build_parser)

    serve_parser = subparsers.add_parser('serve', help='Build, serve and rebuild on change')
    _add_build_arguments(serve_parser)
    serve_parser.add_argument('-P', '--port', type=int, help='Port to listen on')
    serve_parser.add_argument('-H', '--host', type=str, help='Host to bind to')
    serve_parser.add_argument('--no-livereload', action='store_true', help='Disable live reload')
    serve_parser.add_argument('--no-watch', action='store_true', help='Do not rebuild on change')
    return parser


def load_configuration(args: argparse.Namespace):
    """Load the config file and apply command-line overrides. Returns (settings, config path)."""
    source = os.path.abspath(os.path.expanduser(args.source or '.'))
    settings_loader = SiteSettings(config_dir=source, config_file=args.config)
    settings_loader.load_settings()

    overrides = {
        'show_drafts': args.drafts,
        'future': args.future,
        'incremental': args.incremental,
        'port': getattr(args, 'port', None),
        'host': getattr(args, 'host', None),
    }
    if args.destination:
        overrides['destination'] = os.path.abspath(os.path.expanduser(args.destination))
    if getattr(args, 'no_livereload', False):
        overrides['livereload'] = False

    settings = settings_loader.merge_with_args(overrides)
    settings['source'] = source
    return settings, settings_loader.config_file_path


def create_builder(settings, config_path, clean=True, verbose=False, timing=False) -> Builder:
    site = Site(settings['source'], settings, config_path=config_path)
    return Builder(
        site,
        show_drafts=bool(settings.get('show_drafts')),
        show_future=bool(settings.get('future')),
        clean=clean,
        incremental=bool(settings.get('incremental')),
        verbose=verbose,
        timing=timing,
    )


def run_build(builder: Builder, logger: logging.Logger) -> None:
    start_time = time.time()
    timings = builder.build()
    total_time = time.time() - start_time
    logger.info(f"Site built to {builder.destination} in {total_time:.3f} seconds.")
    if timings is not None:
        for op in timings.operations:
            details = f" ({op.details})" if op.details else ""
            logger.info(f"  {op.name}: {op.duration:.3f}s{details}")


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    parser = create_parser()
    argv = list(argv if argv is not None else sys.argv[1:])
    # Bare options mean "build"
    if not argv or argv[0] not in ('build', 'serve', '-h', '--help', '--version'):
        argv = ['build'] + argv
    args = parser.parse_args(argv)

    logger = setup_logging(args.verbose, args.log_dir)

    try:
        settings, config_path = load_configuration(args)
        errors, warnings = validate_settings(settings)
        for warning in warnings:
            logger.warning(f"Warning: {warning}")
        if errors:
            raise SiteError("Invalid configuration: " + "; ".join(errors), file=config_path)

        builder = create_builder(settings, config_path, clean=not args.no_clean,
                                 verbose=args.verbose, timing=args.timing)
        run_build(builder, logger)

        if args.command == 'serve':
            server = DevServer(
                builder.destination,
                builder=builder,
                host=settings['host'],
                port=settings['port'],
                livereload=bool(settings.get('livereload', True)),
                watch=not args.no_watch,
            )
            server.serve_forever()
    except SiteError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
