"""Session state and command dispatch."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from qmregions import config
from qmregions.commands import (
    AddCommand,
    AnalyzeCommand,
    CommandKind,
    Distance,
    MUTATING,
    RemoveCommand,
    WriteCommand,
    parse_command,
    read_command_file,
)
from qmregions.errors import InvalidCombinationError, ParseError, QmRegionsError
from qmregions.model.editor import RegionEditor
from qmregions.model.geometry import measure
from qmregions.model.selection import select
from qmregions.model.spatial import SpatialIndex
from qmregions.model.state import (
    EditOp,
    HistoryEntry,
    Partial,
    Region,
    SelectionResult,
    Target,
)
from qmregions.model.store import Structure
from qmregions.services import report
from qmregions.services.pdb_reader import load_structure
from qmregions.services.pdb_writer import write_id_list, write_pdb, write_text

logger = logging.getLogger(__name__)


class Session:
    """A loaded structure with its region history.

    Attributes
    ----------
    structure
        Structure being edited.
    editor
        Region mutation engine owning the undo/redo history.
    source_path
        Path the structure was loaded from, used by ``write --overwrite``.
    """

    def __init__(
        self,
        structure: Structure,
        source_path: Optional[str] = None,
        submit: Optional[Callable[..., Future]] = None,
    ) -> None:
        """Initialize the session.

        Parameters
        ----------
        structure
            Structure to edit.
        source_path
            Optional path of the structure file.
        submit
            Optional executor submission function for pair scans.

        Returns
        -------
        None
            This method does not return a value.
        """

        self.structure = structure
        self.editor = RegionEditor(structure)
        self.source_path = source_path
        self._submit = submit
        self._index: Optional[SpatialIndex] = None
        self._handlers: Dict[CommandKind, Callable[[object], Dict[str, object]]] = {
            CommandKind.ADD: self._run_add,
            CommandKind.REMOVE: self._run_remove,
            CommandKind.QUERY: lambda command: self.query(command.selection),
            CommandKind.ANALYZE: self._run_analyze,
            CommandKind.WRITE: self._run_write,
            CommandKind.MEASURE: lambda command: self.measure(command.selection),
            CommandKind.EXPORT: lambda command: self.export_state(command.path),
            CommandKind.IMPORT: lambda command: self.import_state(command.path),
            CommandKind.UNDO: lambda command: self.undo(),
            CommandKind.REDO: lambda command: self.redo(),
        }
        missing = set(CommandKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for {sorted(kind.value for kind in missing)}")

    @classmethod
    def load(
        cls, path: str, submit: Optional[Callable[..., Future]] = None
    ) -> "Session":
        """Load a PDB file and start a session on it."""
        return cls(load_structure(path), source_path=str(path), submit=submit)

    def spatial_index(self) -> SpatialIndex:
        """Return the spatial index, rebuilding it when coordinates changed."""
        if self._index is None or not self._index.is_current(self.structure):
            self._index = SpatialIndex(self.structure, submit=self._submit)
        return self._index

    def select(self, text: str) -> SelectionResult:
        return select(text, self.structure, self.spatial_index())

    # Command entry points -------------------------------------------------

    def run(self, line: str) -> Dict[str, object]:
        """Parse and run one command line.

        Raises
        ------
        QmRegionsError
            If parsing or execution fails; state is left unchanged.
        """
        command = parse_command(line)
        logger.debug("Running %s", command)
        return self._handlers[command.kind](command)

    def execute(self, line: str) -> Dict[str, object]:
        """Run one command line and return a payload, never raising for user errors.

        Parameters
        ----------
        line
            Command text.

        Returns
        -------
        dict
            ``{"ok": True, ...}`` on success, or an error payload with the
            error kind, message and details.
        """
        try:
            return self.run(line)
        except QmRegionsError as exc:
            logger.info("Command '%s' failed: %s", line, exc.message)
            return exc.to_result()

    # Region edits ---------------------------------------------------------

    def add(
        self, selection: Optional[str], region: Optional[Region], partial: Partial = Partial.ALL
    ) -> Dict[str, object]:
        """Add the selected atoms to a region.

        Parameters
        ----------
        selection
            Selection text.
        region
            Region to add to.
        partial
            Backbone or sidechain restriction.

        Returns
        -------
        dict
            Payload with the number of atoms changed.

        Raises
        ------
        InvalidCombinationError
            If the selection or region is missing.
        """
        return self._edit(EditOp.ADD, selection, region, partial)

    def remove(
        self,
        selection: Optional[str] = None,
        region: Optional[Region] = None,
        partial: Partial = Partial.ALL,
    ) -> Dict[str, object]:
        """Remove the selected atoms from a region, or clear whole regions."""
        return self._edit(EditOp.REMOVE, selection, region, partial)

    def _edit(
        self,
        op: EditOp,
        selection: Optional[str],
        region: Optional[Region],
        partial: Partial,
    ) -> Dict[str, object]:
        resolved = self.select(selection) if selection is not None else None
        if resolved is not None and not resolved:
            logger.info("Selection '%s' matched nothing", selection)
        entry = self.editor.apply(resolved, region, op, partial)
        changed = entry.flipped if entry is not None else 0
        verb = "Added" if op is EditOp.ADD else "Removed"
        where = region.label if region is not None else "all regions"
        preposition = "to" if op is EditOp.ADD else "from"
        return {
            "ok": True,
            "message": f"{verb} {changed} atoms {preposition} {where}",
            "changed": changed,
        }

    def undo(self) -> Dict[str, object]:
        return self._history_payload(self.editor.undo(), "Undid", "Nothing to undo")

    def redo(self) -> Dict[str, object]:
        return self._history_payload(self.editor.redo(), "Redid", "Nothing to redo")

    @staticmethod
    def _history_payload(
        entry: Optional[HistoryEntry], verb: str, empty: str
    ) -> Dict[str, object]:
        if entry is None:
            return {"ok": True, "message": empty, "changed": 0}
        return {"ok": True, "message": f"{verb}: {entry.label}", "changed": entry.flipped}

    def export_state(self, path: Optional[str] = None) -> Dict[str, object]:
        """Return, and optionally write, commands that rebuild the current regions."""
        commands = self.editor.export_state()
        payload: Dict[str, object] = {"ok": True, "commands": commands}
        if path:
            write_text(path, "".join(f"{command}\n" for command in commands))
            payload["path"] = path
            payload["message"] = f"Exported {len(commands)} commands to {path}"
        return payload

    def import_state(self, source: object) -> Dict[str, object]:
        """Clear all regions and replay region commands as one undoable step.

        Parameters
        ----------
        source
            Path to a command file, or an iterable of command lines.

        Returns
        -------
        dict
            Payload with the number of flags changed.

        Raises
        ------
        QmRegionsError
            If any command fails; regions are restored to their prior state.
        """
        if isinstance(source, (str, Path)):
            lines = read_command_file(str(source))
        else:
            lines = list(source)
        entry = self.editor.import_state(lines, self._run_region_command)
        changed = entry.flipped if entry is not None else 0
        return {"ok": True, "message": f"Imported {len(lines)} commands", "changed": changed}

    def _run_region_command(self, line: str) -> Dict[str, object]:
        command = parse_command(line)
        if command.kind not in MUTATING:
            raise InvalidCombinationError(
                f"Only add/remove commands can be imported, got '{command.kind.value}'",
                {"command": line},
            )
        return self._handlers[command.kind](command)

    def _selection_text(self, command) -> Optional[str]:
        if command.selection_file is None:
            return command.selection
        lines = read_command_file(command.selection_file)
        if not lines:
            raise ParseError(
                f"Empty selection file '{command.selection_file}'",
                {"path": command.selection_file},
            )
        return " ".join(lines)

    def _run_add(self, command: AddCommand) -> Dict[str, object]:
        return self.add(self._selection_text(command), command.region, command.partial)

    def _run_remove(self, command: RemoveCommand) -> Dict[str, object]:
        return self.remove(self._selection_text(command), command.region, command.partial)

    # Reports --------------------------------------------------------------

    def query(self, selection: str) -> Dict[str, object]:
        """List the atoms matched by a selection.

        Returns
        -------
        dict
            Payload with the selection target, matched ids and an atom table.
        """
        result = self.select(selection)
        if result.target is Target.RESIDUES:
            serials = self.structure.expand_residues(result.ids)
            selected = [self.structure.residues[index].label for index in result.ids]
        else:
            serials = list(result.ids)
            selected = list(result.ids)
        table = report.atom_table(self.structure, serials)
        return {
            "ok": True,
            "target": result.target.value,
            "selected": selected,
            "count": len(result),
            "message": f"{len(result)} {result.target.value} selected",
            "table": report.df_to_table(table),
        }

    def analyze(
        self,
        region: Optional[Region] = None,
        target: Optional[Target] = None,
        distance: Optional[Distance] = None,
        cutoff: Optional[float] = None,
    ) -> Dict[str, object]:
        """Summarize regions, list one region, or scan for clashes/contacts.

        Parameters
        ----------
        region
            Region to list in detail; requires ``target``.
        target
            List atoms or residues of ``region``.
        distance
            Run a clash or contact scan.
        cutoff
            Contact cutoff in Angstrom.

        Returns
        -------
        dict
            Payload with a ``summary`` table, an optional ``detail`` table and
            an optional ``table`` of atom pairs.
        """
        if (region is None) != (target is None):
            raise InvalidCombinationError("analyze: region and target must be given together")
        payload: Dict[str, object] = {
            "ok": True,
            "summary": report.df_to_table(report.region_summary(self.structure)),
        }
        if region is not None:
            if target is Target.RESIDUES:
                detail = report.residue_detail(self.structure, region)
            else:
                detail = report.region_atoms(self.structure, region)
            payload["detail"] = report.df_to_table(detail)
        if distance is not None:
            index = self.spatial_index()
            if distance is Distance.CLASHES:
                pairs = index.clash_scan(config.DEFAULT_CLASH_CUTOFF)
            else:
                pairs = index.contact_scan(
                    cutoff if cutoff is not None else config.DEFAULT_CONTACT_CUTOFF
                )
            payload["table"] = report.df_to_table(report.contact_table(self.structure, pairs))
            payload["message"] = f"{len(pairs)} {distance.value} found"
        return payload

    def _run_analyze(self, command: AnalyzeCommand) -> Dict[str, object]:
        return self.analyze(command.region, command.target, command.distance, command.cutoff)

    def measure(self, selection: str) -> Dict[str, object]:
        """Measure the distance, angle or dihedral of 2-4 selected atoms, in selection order."""
        result = self.select(selection)
        if result.target is Target.RESIDUES:
            serials = self.structure.expand_residues(result.ids)
        else:
            serials = list(result.ids)
        measurement = measure(self.structure, serials)
        return {"ok": True, "message": measurement.format(), "measurement": measurement.to_dict()}

    # Output ---------------------------------------------------------------

    def write(
        self,
        region: Optional[Region] = None,
        target: Optional[Target] = None,
        path: Optional[str] = None,
        overwrite: bool = False,
    ) -> Dict[str, object]:
        """Write the structure or a region id list.

        Parameters
        ----------
        region
            Region whose ids to write; the full structure when omitted.
        target
            Write atom serials or residue ids of ``region``.
        path
            Output file; the text is returned in the payload when omitted.
        overwrite
            Write the structure back to the file it was loaded from.

        Returns
        -------
        dict
            Payload with the written text, or the destination path.

        Raises
        ------
        InvalidCombinationError
            If ``overwrite`` is combined with a region or path, or no source
            path is known.
        StructureError
            If the file cannot be written.
        """
        if (region is None) != (target is None):
            raise InvalidCombinationError("write: region and target must be given together")
        if overwrite:
            if region is not None or path:
                raise InvalidCombinationError("write: --overwrite only writes the whole structure")
            if not self.source_path:
                raise InvalidCombinationError("write: no source file to overwrite")
            path = self.source_path

        if region is None:
            text = write_pdb(self.structure)
        elif target is Target.RESIDUES:
            text = write_id_list(
                self.structure.residues[index].label for index in self.structure.residues_in(region)
            )
        else:
            text = write_id_list(self.structure.atoms_in(region))

        if path:
            write_text(path, text)
            return {"ok": True, "path": path, "message": f"Wrote {path}"}
        return {"ok": True, "text": text}

    def _run_write(self, command: WriteCommand) -> Dict[str, object]:
        return self.write(command.region, command.target, command.path, command.overwrite)


def validate_commands(lines: Sequence[str]) -> List[object]:
    """Parse every line before any is run.

    Raises
    ------
    QmRegionsError
        For the first line that does not parse, with its line number.
    """
    commands = []
    for number, line in enumerate(lines, start=1):
        try:
            commands.append(parse_command(line))
        except QmRegionsError as exc:
            raise type(exc)(
                f"Command {number} ('{line}'): {exc.message}", exc.details, kind=exc.kind
            ) from exc
    return commands


def run_batch(session: Session, lines: Iterable[str]) -> List[Dict[str, object]]:
    """Validate then run commands, stopping at the first failure.

    Returns
    -------
    list of dict
        Payloads of the commands that ran; the last one is an error payload
        when a command failed.
    """
    lines = list(lines)
    try:
        validate_commands(lines)
    except QmRegionsError as exc:
        return [exc.to_result()]
    payloads = []
    for line in lines:
        payload = session.execute(line)
        payloads.append(payload)
        if not payload.get("ok"):
            break
    return payloads
