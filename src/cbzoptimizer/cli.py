"""Command line interface: ``optimize`` and ``watch``"""

import argparse
import contextlib
import logging
import re
import signal
import threading
from typing import Callable, List, Optional

from . import __version__
from .config import (DEFAULT_LOG_LEVEL, DEFAULT_PARALLELISM, DEFAULT_QUALITY,
                     DEFAULT_TIMEOUT, LOG_FORMAT, LOG_LEVELS, QUIET_LOGGERS)
from .context import ConversionContext
from .converter import DEFAULT_FORMAT, ConversionFormat, Converter, get_converter, list_all
from .errors import CBZOptimizerError, UnsupportedFormatError
from .pipeline import ChapterPipeline
from .progress import LoggingProgress
from .scheduler import ParallelScheduler, discover_archives
from .watch import WATCH_SUPPORTED, WatchLoop

logger = logging.getLogger(__name__)

ConverterFactory = Callable[[ConversionFormat], Converter]

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}


def parse_duration(value: str) -> float:
    """Parse ``30s``, ``5m``, ``1h``, ``10ms``, ``1m30s`` or bare seconds"""
    text = str(value).strip().lower()
    try:
        seconds = float(text)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(text) or not text:
            raise argparse.ArgumentTypeError(
                f"invalid duration '{value}' (examples: 30s, 5m, 1h, 10ms, 1m30s)")
    if seconds < 0:
        raise argparse.ArgumentTypeError("duration cannot be negative")
    return seconds


def quality_type(value: str) -> int:
    try:
        quality = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid quality '{value}'")
    if not 0 <= quality <= 100:
        raise argparse.ArgumentTypeError("quality must be between 0 and 100")
    return quality


def parallelism_type(value: str) -> int:
    try:
        parallelism = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid parallelism '{value}'")
    if parallelism < 1:
        raise argparse.ArgumentTypeError("parallelism must be at least 1")
    return parallelism


def format_type(value: str) -> ConversionFormat:
    try:
        return ConversionFormat.parse(value)
    except UnsupportedFormatError as e:
        raise argparse.ArgumentTypeError(str(e))


def _add_conversion_flags(parser: argparse.ArgumentParser):
    parser.add_argument('--format', '-f',
                        type=format_type,
                        default=DEFAULT_FORMAT,
                        metavar='{' + ','.join(list_all()) + '}',
                        help=f'Format to convert the images to (default: {DEFAULT_FORMAT})')
    parser.add_argument('--quality', '-q',
                        type=quality_type,
                        default=DEFAULT_QUALITY,
                        help=f'Quality for conversion, 0-100 (default: {DEFAULT_QUALITY})')
    parser.add_argument('--override', '-o',
                        action='store_true',
                        help='Override the original CBZ/CBR files')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cbzoptimizer',
        description="Optimize CBZ/CBR comics by converting their pages to a smaller image format.",
        epilog="Examples:\n"
               "  %(prog)s optimize comic.cbz\n"
               "  %(prog)s optimize --quality 80 --split --parallelism 4 ~/Comics/\n"
               "  %(prog)s optimize --override --timeout 5m ~/Comics/\n"
               "  %(prog)s watch --override ~/Downloads/",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--log-level',
                        choices=LOG_LEVELS,
                        default=DEFAULT_LOG_LEVEL if DEFAULT_LOG_LEVEL in LOG_LEVELS else 'info',
                        help='Logging verbosity (default: $CBZOPTIMIZER_LOG_LEVEL or info)')
    parser.add_argument('--version',
                        action='version',
                        version=f'CBZOptimizer {__version__}')

    subparsers = parser.add_subparsers(dest='command', metavar='command')
    subparsers.required = True

    optimize = subparsers.add_parser(
        'optimize',
        help='Optimize CBZ/CBR files',
        description='Optimize CBZ/CBR files by converting their pages. '
                    'Each path may be a file or a directory searched recursively.')
    optimize.add_argument('paths', nargs='+', metavar='path',
                          help='Archive file or directory containing archives')
    _add_conversion_flags(optimize)
    optimize.add_argument('--split', '-s',
                          action='store_true',
                          help='Split long pages into smaller chunks')
    optimize.add_argument('--timeout', '-t',
                          type=parse_duration,
                          default=DEFAULT_TIMEOUT,
                          help='Maximum time for converting a single chapter '
                               '(e.g. 30s, 5m, 1h). 0 means no timeout')
    optimize.add_argument('--parallelism', '-n',
                          type=parallelism_type,
                          default=DEFAULT_PARALLELISM,
                          help=f'Number of chapters to convert in parallel '
                               f'(default: {DEFAULT_PARALLELISM})')
    optimize.set_defaults(handler=optimize_command)

    if WATCH_SUPPORTED:
        watch = subparsers.add_parser(
            'watch',
            help='Watch a folder for new CBZ/CBR files',
            description='Watch a folder for new CBZ/CBR files and optimize them '
                        'as they are written or moved in.')
        watch.add_argument('folder', help='Folder to watch (recursively)')
        _add_conversion_flags(watch)
        watch.set_defaults(handler=watch_command)

    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT)
    if level != 'debug':
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


@contextlib.contextmanager
def cancel_on_signal(ctx: ConversionContext):
    """Cancel ``ctx`` on SIGINT/SIGTERM while inside the block"""
    if threading.current_thread() is not threading.main_thread():
        yield ctx
        return

    def handler(signum, _frame):
        logger.warning("Received %s, finishing in-flight work", signal.Signals(signum).name)
        ctx.cancel()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield ctx
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def optimize_command(args, converter_factory: ConverterFactory) -> int:
    files = discover_archives(args.paths)

    converter = converter_factory(args.format)
    converter.prepare_converter()

    print(f"CBZOptimizer v{__version__}")
    print("-" * 50)
    print(f"Format: {args.format}")
    print(f"Quality: {args.quality}")
    print(f"Override: {'Yes' if args.override else 'No'}")
    print(f"Split: {'Yes' if args.split else 'No'}")
    print(f"Timeout: {f'{args.timeout:g}s' if args.timeout else 'None'}")
    print(f"Parallelism: {args.parallelism}")
    print("-" * 50)

    if not files:
        print(f"No CBZ/CBR files found in: {', '.join(args.paths)}")
        return 0
    print(f"Found {len(files)} archives to process")

    pipeline = ChapterPipeline(
        converter,
        quality=args.quality,
        override=args.override,
        split=args.split,
        timeout=args.timeout,
        progress=LoggingProgress(),
    )
    scheduler = ParallelScheduler(pipeline, parallelism=args.parallelism)
    with cancel_on_signal(ConversionContext()) as ctx:
        result = scheduler.run(files, ctx)

    print("\n" + "=" * 60)
    print(f"Successfully processed: {result.successful}/{result.total} files")
    if result.skipped:
        print(f"Already converted (skipped): {len(result.skipped)}")
    if result.failures:
        print("\nFailed files:")
        for path, error in result.failures:
            print(f"  - {path}: {error}")

    if result.total > 0 and result.successful == 0:
        print("No files were converted successfully.")
        return 1
    return 0


def watch_command(args, converter_factory: ConverterFactory) -> int:
    converter = converter_factory(args.format)
    loop = WatchLoop(converter, args.folder, quality=args.quality, override=args.override)
    with cancel_on_signal(ConversionContext()) as ctx:
        loop.run(ctx)
    return 0


def main(argv: Optional[List[str]] = None,
         converter_factory: ConverterFactory = get_converter) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        return args.handler(args, converter_factory)
    except CBZOptimizerError as e:
        print(f"\nError: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nCancelled by user")
        return 1
