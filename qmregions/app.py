"""qmregions application entrypoint."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, List, Optional, Sequence

from qmregions import config
from qmregions.commands import read_command_file, split_commands
from qmregions.errors import QmRegionsError
from qmregions.logging_config import configure_logging
from qmregions.model.session import Session, run_batch
from qmregions.services.report import render_payload
from qmregions.worker import Worker

logger = logging.getLogger(__name__)

HELP_TEXT = """\
Commands (one per prompt line; separate single-shot commands with '/'):
  add|a      --qm1|--qm2|--active [--backbone|--sidechain] SELECTION
  remove|r   [--qm1|--qm2|--active] [--backbone|--sidechain] [SELECTION]
  query|q    SELECTION
  analyze|y  [--qm1|--qm2|--active --atoms|--residues] [--clashes|--contacts [CUTOFF]]
  write|w    [--qm1|--qm2|--active --atoms|--residues] [--file PATH | --overwrite]
  measure|m  SELECTION            (2-4 atoms: distance, angle or dihedral)
  export|x   [--file PATH]
  import|i   PATH
  undo, redo, help, exit

Selections: id, resid, name, resn, sphere ID RADIUS, ressphere ID RADIUS
combined with and/&, or/| (left to right, no precedence) and not/!.
"""


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog=config.APP_NAME,
        description="Edit QM1/QM2/active regions of a PDB file (options go before PDBFILE)",
    )
    parser.add_argument("pdbfile", help="Path to the PDB file")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-i",
        "--interactive",
        dest="interactive",
        action="store_true",
        help="Read commands from an interactive prompt",
    )
    mode.add_argument(
        "-f",
        "--file",
        dest="batch_file",
        default=None,
        help="Read commands from a file, one per line",
    )
    parser.add_argument(
        "--log-file",
        dest="log_file",
        default=None,
        help="Write logs to this file instead of stderr",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default=config.DEFAULT_LOG_LEVEL,
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--workers",
        dest="workers",
        type=int,
        default=config.DEFAULT_WORKERS,
        help="Worker threads for clash/contact scans",
    )
    parser.add_argument(
        "commands",
        nargs=argparse.REMAINDER,
        help="Commands separated by '/'",
    )
    args = parser.parse_args(list(argv[1:]))
    if args.commands and (args.interactive or args.batch_file):
        parser.error("commands cannot be combined with -i or -f")
    if not (args.commands or args.interactive or args.batch_file):
        parser.error("give commands, -f FILE, or -i for the interactive prompt")
    return args


def run_commands(
    session: Session, lines: Sequence[str], output: Callable[[str], None] = print
) -> int:
    """Validate and run commands, stopping at the first failure.

    Parameters
    ----------
    session
        Session to run the commands in.
    lines
        Command lines.
    output
        Callable receiving rendered output.

    Returns
    -------
    int
        Exit code: 0 when every command succeeded, 1 otherwise.
    """

    status = 0
    for payload in run_batch(session, lines):
        text = render_payload(payload)
        if text:
            output(text)
        if not payload.get("ok"):
            status = 1
    return status


def run_interactive(
    session: Session,
    read: Callable[[str], str] = input,
    output: Callable[[str], None] = print,
) -> int:
    """Run the interactive prompt until exit or end of input.

    Errors are reported and the prompt keeps accepting commands.
    """

    output(f"{config.APP_NAME}: type 'help' for commands, 'exit' to quit")
    while True:
        try:
            line = read(config.PROMPT)
        except (EOFError, KeyboardInterrupt):
            output("")
            break
        line = line.strip()
        if not line:
            continue
        lowered = line.lower()
        if lowered in config.EXIT_WORDS:
            break
        if lowered in ("help", "h", "?"):
            output(HELP_TEXT)
            continue
        text = render_payload(session.execute(line))
        if text:
            output(text)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Run the qmregions application.

    Returns
    -------
    int
        Process exit code.
    """

    args = _parse_args(sys.argv if argv is None else argv)
    configure_logging(args.log_file, args.log_level)
    logger.debug("Starting %s on %s", config.APP_NAME, args.pdbfile)
    with Worker(max_workers=args.workers) as worker:
        try:
            session = Session.load(args.pdbfile, submit=worker.submit)
            if args.interactive:
                return run_interactive(session)
            if args.batch_file:
                lines = read_command_file(args.batch_file)
            else:
                lines = split_commands(" ".join(args.commands))
        except QmRegionsError as exc:
            print(render_payload(exc.to_result()), file=sys.stderr)
            return 1
        return run_commands(session, lines)
