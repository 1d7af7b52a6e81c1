"""Region mutation engine with linear undo/redo history."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from qmregions import config
from qmregions.errors import InvalidCombinationError
from qmregions.model.state import (
    EditOp,
    FlagChange,
    HistoryEntry,
    Partial,
    Region,
    SelectionResult,
    Target,
)
from qmregions.model.store import Structure

logger = logging.getLogger(__name__)

REGION_OPTIONS = {Region.QM1: "--qm1", Region.QM2: "--qm2", Region.ACTIVE: "--active"}


class _Transaction:
    def __init__(self, label: str, snapshot: Tuple[Region, ...]) -> None:
        self.label = label
        self.snapshot = snapshot
        self.changes: List[FlagChange] = []


class RegionEditor:
    """Applies region edits to a structure and records them for undo/redo.

    Every edit that flips at least one flag pushes one history entry; an
    edit that changes nothing leaves history untouched. Any new entry
    clears the redo stack.
    """

    def __init__(self, structure: Structure) -> None:
        self._structure = structure
        self._undo: List[HistoryEntry] = []
        self._redo: List[HistoryEntry] = []
        self._transaction: Optional[_Transaction] = None

    @property
    def history(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self._undo)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def apply(
        self,
        selection: Optional[SelectionResult],
        region: Optional[Region],
        op: EditOp = EditOp.ADD,
        partial: Partial = Partial.ALL,
    ) -> Optional[HistoryEntry]:
        """Add or remove a region for the selected atoms.

        Parameters
        ----------
        selection
            Selected atoms or residues. Residues are expanded to all their
            atoms. ``None`` with ``EditOp.REMOVE`` clears whole regions.
        region
            Region to edit. ``None`` with a blanket remove clears all regions.
        op
            Whether to add or remove the region.
        partial
            Restrict the edit to backbone or sidechain atoms of amino acids.

        Returns
        -------
        HistoryEntry or None
            The recorded entry, or None when no flag changed.

        Raises
        ------
        InvalidCombinationError
            If ``add`` is missing a selection or a region, if a selection is
            given without a region, or if a partial mode is used without a
            selection.
        """

        if partial is not Partial.ALL and selection is None:
            raise InvalidCombinationError("Backbone/sidechain modes need a selection")
        if op is EditOp.ADD:
            if selection is None:
                raise InvalidCombinationError("Adding to a region needs a selection")
            if region is None:
                raise InvalidCombinationError("Adding needs a region (--qm1, --qm2 or --active)")
        if selection is None:
            return self.clear(region)
        if region is None:
            raise InvalidCombinationError("Removing a selection needs a region (--qm1, --qm2 or --active)")
        _check_single(region)

        serials = self._selected_atoms(selection)
        indices = self._filter_partial(serials, partial)
        value = op is EditOp.ADD
        flipped = tuple(
            index for index in indices if self._structure.has_region(index, region) != value
        )
        label = f"{op.value} {region.label} {partial.value} ({len(flipped)} atoms)"
        if not flipped:
            logger.info("No flags changed by '%s'", label)
            return None
        change = FlagChange(region, flipped, value)
        return self._record(
            HistoryEntry(op, region, partial, tuple(serials), (change,), label)
        )

    def clear(self, region: Optional[Region] = None) -> Optional[HistoryEntry]:
        """Remove every atom from ``region``, or from all regions when None."""
        regions = Region.singles() if region is None else (region,)
        changes = []
        for single in regions:
            _check_single(single)
            indices = tuple(
                index
                for index in range(self._structure.atom_count)
                if self._structure.has_region(index, single)
            )
            if indices:
                changes.append(FlagChange(single, indices, False))
        label = "clear " + ("all regions" if region is None else region.label)
        if not changes:
            logger.info("Nothing to clear for '%s'", label)
            return None
        return self._record(
            HistoryEntry(EditOp.REMOVE, region, Partial.ALL, (), tuple(changes), label)
        )

    def undo(self) -> Optional[HistoryEntry]:
        """Revert the most recent entry and move it to the redo stack."""
        if not self._undo:
            return None
        entry = self._undo.pop()
        for change in reversed(entry.changes):
            self._structure._write_flags(change.atom_indices, change.region, not change.value)
        self._redo.append(entry)
        logger.debug("Undo: %s", entry.label)
        return entry

    def redo(self) -> Optional[HistoryEntry]:
        """Reapply the most recently undone entry."""
        if not self._redo:
            return None
        entry = self._redo.pop()
        for change in entry.changes:
            self._structure._write_flags(change.atom_indices, change.region, change.value)
        self._undo.append(entry)
        logger.debug("Redo: %s", entry.label)
        return entry

    @contextmanager
    def transaction(self, label: str) -> Iterator[None]:
        """Group edits into a single history entry.

        Flags are restored if the block raises.
        """
        if self._transaction is not None:
            yield
            return
        self._transaction = _Transaction(label, self._structure.snapshot_flags())
        try:
            yield
        except BaseException:
            self._structure._restore_flags(self._transaction.snapshot)
            self._transaction = None
            raise
        transaction, self._transaction = self._transaction, None
        if transaction.changes:
            self._push(
                HistoryEntry(
                    EditOp.ADD,
                    None,
                    Partial.ALL,
                    (),
                    tuple(transaction.changes),
                    transaction.label,
                )
            )

    def export_state(self) -> List[str]:
        """Return commands that rebuild the current regions from empty ones.

        Returns
        -------
        list of str
            One ``add`` command per non-empty region, e.g.
            ``add --qm1 id 1-5,9``.
        """
        order = sorted(atom.serial for atom in self._structure.atoms)
        commands = []
        for region in Region.singles():
            members = set(self._structure.atoms_in(region))
            if not members:
                continue
            ranges = _compress(order, members)
            commands.append(f"add {REGION_OPTIONS[region]} id {','.join(ranges)}")
        return commands

    def import_state(
        self, commands: Iterable[str], run: Callable[[str], object]
    ) -> Optional[HistoryEntry]:
        """Clear all regions and replay ``commands`` as one history entry.

        Parameters
        ----------
        commands
            Command lines; blank lines and ``#`` comments are skipped.
        run
            Callable executing one command line and raising on failure.

        Returns
        -------
        HistoryEntry or None
            The recorded entry, or None if the import changed nothing.

        Raises
        ------
        QmRegionsError
            Whatever ``run`` raises; all flags are restored first.
        """
        lines = [line.strip() for line in commands]
        lines = [line for line in lines if line and not line.startswith("#")]
        before = len(self._undo)
        with self.transaction(f"import ({len(lines)} commands)"):
            self.clear()
            for line in lines:
                run(line)
        if len(self._undo) > before:
            return self._undo[-1]
        return None

    def _record(self, entry: HistoryEntry) -> HistoryEntry:
        for change in entry.changes:
            self._structure._write_flags(change.atom_indices, change.region, change.value)
        if self._transaction is not None:
            self._transaction.changes.extend(entry.changes)
        else:
            self._push(entry)
        logger.debug("Applied %s", entry.label)
        return entry

    def _push(self, entry: HistoryEntry) -> None:
        self._undo.append(entry)
        self._redo.clear()

    def _selected_atoms(self, selection: SelectionResult) -> List[int]:
        if selection.target is Target.RESIDUES:
            return self._structure.expand_residues(selection.ids)
        return list(selection.ids)

    def _filter_partial(self, serials: Sequence[int], partial: Partial) -> List[int]:
        structure = self._structure
        indices = [structure.atom_index(serial) for serial in serials]
        if partial is Partial.ALL:
            return indices
        keep = []
        for index in indices:
            atom = structure.atoms[index]
            residue = structure.residues[atom.residue_index]
            if not residue.is_amino_acid:
                continue
            on_backbone = atom.name.strip().upper() in config.BACKBONE_NAMES
            if on_backbone == (partial is Partial.BACKBONE):
                keep.append(index)
        return keep


def _check_single(region: Region) -> None:
    if region not in Region.singles():
        raise InvalidCombinationError(f"Expected a single region, got {region}")


def _compress(order: Sequence[int], members: set) -> List[str]:
    ranges = []
    start = previous = None
    for serial in order:
        if serial in members:
            if start is None:
                start = serial
            previous = serial
            continue
        if start is not None:
            ranges.append(_format_range(start, previous))
            start = None
    if start is not None:
        ranges.append(_format_range(start, previous))
    return ranges


def _format_range(start: int, stop: int) -> str:
    return str(start) if start == stop else f"{start}-{stop}"
