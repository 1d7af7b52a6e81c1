"""Command line grammar for the region editing shell.

Each line is one command: a subcommand word (or its alias) followed by
options and, where the command takes one, a selection expression.
"""

from __future__ import annotations

import argparse
import enum
from dataclasses import dataclass
from typing import ClassVar, Dict, List, Optional, Sequence

from qmregions import config
from qmregions.errors import InvalidCombinationError, ParseError, StructureError
from qmregions.model.state import Partial, Region, Target


class CommandKind(enum.Enum):
    ADD = "add"
    REMOVE = "remove"
    QUERY = "query"
    ANALYZE = "analyze"
    WRITE = "write"
    MEASURE = "measure"
    EXPORT = "export"
    IMPORT = "import"
    UNDO = "undo"
    REDO = "redo"


class Distance(enum.Enum):
    CLASHES = "clashes"
    CONTACTS = "contacts"


@dataclass(frozen=True)
class AddCommand:
    """Add selected atoms to a region."""

    kind: ClassVar[CommandKind] = CommandKind.ADD
    region: Optional[Region]
    partial: Partial = Partial.ALL
    selection: Optional[str] = None
    selection_file: Optional[str] = None


@dataclass(frozen=True)
class RemoveCommand:
    """Remove selected atoms from a region, or clear regions."""

    kind: ClassVar[CommandKind] = CommandKind.REMOVE
    region: Optional[Region] = None
    partial: Partial = Partial.ALL
    selection: Optional[str] = None
    selection_file: Optional[str] = None


@dataclass(frozen=True)
class QueryCommand:
    kind: ClassVar[CommandKind] = CommandKind.QUERY
    selection: str


@dataclass(frozen=True)
class AnalyzeCommand:
    """Summarize regions, optionally listing one region or scanning distances."""

    kind: ClassVar[CommandKind] = CommandKind.ANALYZE
    region: Optional[Region] = None
    target: Optional[Target] = None
    distance: Optional[Distance] = None
    cutoff: Optional[float] = None


@dataclass(frozen=True)
class WriteCommand:
    """Write the structure, or the id list of one region."""

    kind: ClassVar[CommandKind] = CommandKind.WRITE
    region: Optional[Region] = None
    target: Optional[Target] = None
    path: Optional[str] = None
    overwrite: bool = False


@dataclass(frozen=True)
class MeasureCommand:
    kind: ClassVar[CommandKind] = CommandKind.MEASURE
    selection: str


@dataclass(frozen=True)
class ExportCommand:
    kind: ClassVar[CommandKind] = CommandKind.EXPORT
    path: Optional[str] = None


@dataclass(frozen=True)
class ImportCommand:
    kind: ClassVar[CommandKind] = CommandKind.IMPORT
    path: str


@dataclass(frozen=True)
class UndoCommand:
    kind: ClassVar[CommandKind] = CommandKind.UNDO


@dataclass(frozen=True)
class RedoCommand:
    kind: ClassVar[CommandKind] = CommandKind.REDO


ALIASES: Dict[str, CommandKind] = {
    "add": CommandKind.ADD,
    "a": CommandKind.ADD,
    "remove": CommandKind.REMOVE,
    "r": CommandKind.REMOVE,
    "rem": CommandKind.REMOVE,
    "query": CommandKind.QUERY,
    "q": CommandKind.QUERY,
    "que": CommandKind.QUERY,
    "analyze": CommandKind.ANALYZE,
    "y": CommandKind.ANALYZE,
    "ana": CommandKind.ANALYZE,
    "write": CommandKind.WRITE,
    "w": CommandKind.WRITE,
    "measure": CommandKind.MEASURE,
    "m": CommandKind.MEASURE,
    "export": CommandKind.EXPORT,
    "x": CommandKind.EXPORT,
    "import": CommandKind.IMPORT,
    "i": CommandKind.IMPORT,
    "undo": CommandKind.UNDO,
    "redo": CommandKind.REDO,
}

MUTATING = frozenset({CommandKind.ADD, CommandKind.REMOVE})


class _CommandParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise ParseError(f"{self.prog}: {message}", {"command": self.prog})


def _parser(name: str) -> _CommandParser:
    return _CommandParser(prog=name, add_help=False, allow_abbrev=False)


def _add_region(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--qm1", "-q", dest="region", action="store_const", const=Region.QM1)
    group.add_argument("--qm2", "-o", dest="region", action="store_const", const=Region.QM2)
    group.add_argument("--active", "-a", dest="region", action="store_const", const=Region.ACTIVE)


def _add_target(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--atoms", "-t", dest="target", action="store_const", const=Target.ATOMS)
    group.add_argument("--residues", "-r", dest="target", action="store_const", const=Target.RESIDUES)


def _edit_parser(name: str) -> _CommandParser:
    parser = _parser(name)
    _add_region(parser)
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--backbone", "-b", dest="partial", action="store_const", const=Partial.BACKBONE,
        default=Partial.ALL,
    )
    group.add_argument(
        "--sidechain", "-d", dest="partial", action="store_const", const=Partial.SIDECHAIN,
        default=Partial.ALL,
    )
    parser.add_argument("--file", "-f", dest="selection_file", default=None)
    parser.add_argument("selection", nargs="*")
    return parser


def _selection_parser(name: str) -> _CommandParser:
    parser = _parser(name)
    parser.add_argument("selection", nargs="+")
    return parser


def _analyze_parser() -> _CommandParser:
    parser = _parser("analyze")
    _add_region(parser)
    _add_target(parser)
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--clashes", "-c", dest="clashes", action="store_true")
    group.add_argument(
        "--contacts", "-n", dest="contacts", nargs="?", type=float,
        const=config.DEFAULT_CONTACT_CUTOFF, default=None, metavar="CUTOFF",
    )
    return parser


def _write_parser() -> _CommandParser:
    parser = _parser("write")
    _add_region(parser)
    _add_target(parser)
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--file", "-f", dest="path", default=None)
    group.add_argument("--overwrite", "-w", dest="overwrite", action="store_true")
    return parser


def _export_parser() -> _CommandParser:
    parser = _parser("export")
    parser.add_argument("--file", "-f", dest="path", default=None)
    return parser


def _import_parser() -> _CommandParser:
    parser = _parser("import")
    parser.add_argument("path")
    return parser


_PARSERS = {
    CommandKind.ADD: _edit_parser("add"),
    CommandKind.REMOVE: _edit_parser("remove"),
    CommandKind.QUERY: _selection_parser("query"),
    CommandKind.ANALYZE: _analyze_parser(),
    CommandKind.WRITE: _write_parser(),
    CommandKind.MEASURE: _selection_parser("measure"),
    CommandKind.EXPORT: _export_parser(),
    CommandKind.IMPORT: _import_parser(),
    CommandKind.UNDO: _parser("undo"),
    CommandKind.REDO: _parser("redo"),
}


def _require_pair(region: Optional[Region], target: Optional[Target], name: str) -> None:
    if (region is None) != (target is None):
        raise InvalidCombinationError(
            f"{name}: a region (--qm1, --qm2, --active) and a target "
            "(--atoms, --residues) must be given together"
        )


def _joined(words: Sequence[str]) -> Optional[str]:
    text = " ".join(words).strip()
    return text or None


def parse_command(line: str):
    """Parse one command line.

    Parameters
    ----------
    line
        Command text such as ``"add --qm1 resid 5-9"``.

    Returns
    -------
    Command
        One of the command dataclasses; ``command.kind`` names the variant.

    Raises
    ------
    ParseError
        If the subcommand is unknown or its options are malformed.
    InvalidCombinationError
        If options are given in a combination that is not allowed.
    """

    words = (line or "").split()
    if not words:
        raise ParseError("Empty command", {"command": line})
    kind = ALIASES.get(words[0].lower())
    if kind is None:
        raise ParseError(f"Unknown command '{words[0]}'", {"command": words[0]})
    args = _PARSERS[kind].parse_intermixed_args(words[1:])

    if kind in MUTATING:
        selection = _joined(args.selection)
        if selection is not None and args.selection_file is not None:
            raise InvalidCombinationError(
                f"{kind.value}: give the selection inline or with --file, not both"
            )
        variant = AddCommand if kind is CommandKind.ADD else RemoveCommand
        return variant(
            region=args.region,
            partial=args.partial,
            selection=selection,
            selection_file=args.selection_file,
        )
    if kind is CommandKind.QUERY:
        return QueryCommand(selection=_joined(args.selection))
    if kind is CommandKind.MEASURE:
        return MeasureCommand(selection=_joined(args.selection))
    if kind is CommandKind.ANALYZE:
        _require_pair(args.region, args.target, "analyze")
        distance = None
        if args.clashes:
            distance = Distance.CLASHES
        elif args.contacts is not None:
            distance = Distance.CONTACTS
        return AnalyzeCommand(
            region=args.region, target=args.target, distance=distance, cutoff=args.contacts
        )
    if kind is CommandKind.WRITE:
        if args.overwrite and args.region is not None:
            raise InvalidCombinationError("write: --overwrite writes the structure, not a region list")
        _require_pair(args.region, args.target, "write")
        return WriteCommand(
            region=args.region, target=args.target, path=args.path, overwrite=args.overwrite
        )
    if kind is CommandKind.EXPORT:
        return ExportCommand(path=args.path)
    if kind is CommandKind.IMPORT:
        return ImportCommand(path=args.path)
    if kind is CommandKind.UNDO:
        return UndoCommand()
    return RedoCommand()


def split_commands(text: str) -> List[str]:
    """Split single-shot input on ``/`` into command lines."""
    return [part.strip() for part in text.split("/") if part.strip()]


def read_command_file(path: str) -> List[str]:
    """Read command lines from a file, skipping blank lines and ``#`` comments.

    Raises
    ------
    StructureError
        If the file cannot be read.
    """
    try:
        with open(path, encoding="utf-8") as handle:
            lines = handle.read().splitlines()
    except OSError as exc:
        raise StructureError(f"Cannot read '{path}'", str(exc), kind="io_error") from exc
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]
