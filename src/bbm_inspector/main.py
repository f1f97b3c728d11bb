"""
Main entry point for the NAND bad-block map inspector.

This module provides the main() function behind the bbm-inspector
command: it parses arguments, asks for an image when none is given, runs
the scan and maps the outcome onto an exit code.
"""

import sys
import logging
import argparse
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.prompt import Confirm, Prompt

from bbm_inspector import __version__
from bbm_inspector.analysis.pipeline import run_scan
from bbm_inspector.core.session import ScanSession
from bbm_inspector.core.settings import PatternPass, load_settings
from bbm_inspector.utils import (
    EXIT_NO_IMAGE,
    ImageSourceContext,
    ReportContext,
    get_exit_code,
    handle_image_error,
    log_performance,
    report_path_for,
    save_scan_results,
    setup_logging,
)

PROGRAM_NAME = "bbm-inspector"

logger = logging.getLogger(__name__)


def report_banner() -> str:
    """First line of every persisted report."""
    major, minor = __version__.split(".")[:2]
    return f" {PROGRAM_NAME} version {major}.{minor}"


def build_parser() -> argparse.ArgumentParser:
    """Command-line interface definition."""
    parser = argparse.ArgumentParser(
        prog=PROGRAM_NAME,
        description="Inspect the bad block map of a NAND512 flash dump",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  # Check the bad block map, writing dump_out.txt next to the image
  %(prog)s dump.bin

  # Also look for E7 filler and zero-filled areas
  %(prog)s dump.bin --patterns e7 zeros

  # Search the whole image for the header without asking, export JSON
  %(prog)s dump.bin --yes --json dump_scan.json
        '''
    )

    parser.add_argument('image', nargs='?', type=Path,
                        help='NAND image to inspect (asked for when omitted)')
    parser.add_argument('--config', metavar='JSON', type=Path,
                        help='Settings file (default: user settings file)')
    parser.add_argument('--patterns', nargs='+', metavar='PASS',
                        choices=[p.value for p in PatternPass] + ['all'],
                        help='Pattern passes to run: e7, zeros, sequence or all')
    parser.add_argument('--no-report-file', action='store_true',
                        help='Do not write <image>_out.txt')
    parser.add_argument('--json', metavar='PATH', type=Path,
                        help='Export scan results as JSON')

    retry = parser.add_mutually_exclusive_group()
    retry.add_argument('--yes', '-y', dest='retry', action='store_const', const=True,
                       help='Search again from offset 0 without asking')
    retry.add_argument('--no-retry', dest='retry', action='store_const', const=False,
                       help='Never search again from offset 0')

    parser.add_argument('--log-file', metavar='PATH',
                        help='Debug log path (default from settings)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Show log messages on the console')
    parser.add_argument('--version', action='version',
                        version=f"%(prog)s {__version__}")
    return parser


def prompt_for_image(console: Console) -> Optional[Path]:
    """
    Ask for the image to inspect.

    Returns:
        Selected path, or None if nothing was entered
    """
    answer = Prompt.ask("Image file to inspect", console=console, default="",
                        show_default=False)
    answer = answer.strip()
    return Path(answer) if answer else None


def make_retry_confirmation(console: Console,
                            answer: Optional[bool] = None) -> Callable[[], bool]:
    """
    Confirmation function asked when the header search runs off the end.

    Args:
        console: Console to prompt on
        answer: Fixed answer from the command line, or None to ask
    """
    if answer is not None:
        return lambda: answer

    def confirm() -> bool:
        return Confirm.ask(
            "Search again from the beginning of the file?",
            console=console, default=True,
        )

    return confirm


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the inspector.

    Returns:
        0 when all stages ran, 1 when no image could be opened,
        2 when header decoding aborted
    """
    args = build_parser().parse_args(argv)
    console = Console(highlight=False)

    try:
        settings = load_settings(args.config)
    except ValueError as e:
        console.print(f"[bold red]Invalid configuration:[/bold red] {e}")
        return EXIT_NO_IMAGE

    if args.patterns:
        if 'all' in args.patterns:
            settings.pattern_passes = list(PatternPass)
        else:
            settings.pattern_passes = [PatternPass(p) for p in args.patterns]
    if args.no_report_file:
        settings.write_report_file = False
    if args.log_file:
        settings.log_file = args.log_file

    setup_logging(settings.log_file,
                  console_level=logging.DEBUG if args.verbose else logging.WARNING)

    image_path = args.image if args.image is not None else prompt_for_image(console)
    if image_path is None:
        console.print("[bold red]No image selected[/bold red]")
        return EXIT_NO_IMAGE

    report_path = None
    if settings.write_report_file:
        report_path = report_path_for(image_path, settings.report_suffix)

    try:
        with ImageSourceContext(image_path) as cursor, \
                ReportContext(report_path, report_banner(), console) as reporter:
            session = ScanSession(
                cursor=cursor,
                reporter=reporter,
                settings=settings,
                confirm_retry=make_retry_confirmation(console, args.retry),
            )
            result = run_scan(session)
    except OSError as e:
        target = e.filename if e.filename else image_path
        console.print(f"[bold red]{handle_image_error(e.errno, f'open {target}')}[/bold red]")
        return EXIT_NO_IMAGE

    log_performance("scan", result.duration,
                    bad_blocks=len(result.table),
                    failed_checks=len(result.failures))

    if args.json is not None:
        try:
            save_scan_results(result, args.json, image_path=str(image_path))
        except OSError as e:
            console.print(f"[bold red]{handle_image_error(e.errno, f'write {args.json}')}[/bold red]")

    if report_path is not None:
        console.print(f"[dim]Report written to {report_path}[/dim]")

    return get_exit_code(result)


if __name__ == "__main__":
    sys.exit(main())
