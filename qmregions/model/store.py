"""Structure identity and region flag storage."""

from __future__ import annotations

import bisect
import logging
import re
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from qmregions import config
from qmregions.errors import AmbiguousRangeError, NotFoundError, StructureError
from qmregions.model.state import Atom, AtomRecord, Region, Residue, Target

logger = logging.getLogger(__name__)

_ATOM_TOKEN = re.compile(r"^(\d+)(?:[-:](\d+))?$")
_RESIDUE_TOKEN = re.compile(r"^(\d+)([A-Za-z]?)(?:[-:](\d+)([A-Za-z]?))?$")


class Structure:
    """Atoms, residues and their region flags.

    Attributes
    ----------
    atoms
        Atoms in file order.
    residues
        Residues in file order; ``Residue.index`` is the position in this list.
    source_lines
        Original file lines, used to write the structure back unchanged
        apart from the region columns.
    """

    def __init__(
        self,
        atoms: Sequence[Atom],
        residues: Sequence[Residue],
        flags: Optional[Sequence[Region]] = None,
        source_lines: Optional[Sequence[str]] = None,
    ) -> None:
        self.atoms: List[Atom] = list(atoms)
        self.residues: List[Residue] = list(residues)
        self.source_lines: Optional[List[str]] = (
            list(source_lines) if source_lines is not None else None
        )
        if flags is None:
            self._flags: List[Region] = [Region.NONE] * len(self.atoms)
        else:
            if len(flags) != len(self.atoms):
                raise StructureError("Flag count does not match atom count")
            self._flags = list(flags)
        self._coords = np.array(
            [atom.coords for atom in self.atoms], dtype=np.float64
        ).reshape(-1, 3)
        self._coordinates_version = 0

        self._index_by_serial: Dict[int, int] = {
            atom.serial: index for index, atom in enumerate(self.atoms)
        }
        if len(self._index_by_serial) != len(self.atoms):
            raise StructureError("Atom serials are not unique")
        self._sorted_serials = sorted(self._index_by_serial)

        self._residues_by_serial: Dict[Tuple[int, str], List[int]] = {}
        self._residues_by_label: Dict[Tuple[int, str], List[int]] = {}
        for residue in self.residues:
            self._residues_by_serial.setdefault(
                (residue.serial, residue.icode), []
            ).append(residue.index)
            self._residues_by_label.setdefault(
                (residue.number, residue.icode), []
            ).append(residue.index)
        self._residue_serial_keys = sorted(
            (residue.serial, residue.index) for residue in self.residues
        )

    # Identity -------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.atoms)

    @property
    def atom_count(self) -> int:
        return len(self.atoms)

    @property
    def residue_count(self) -> int:
        return len(self.residues)

    def has_atom(self, serial: int) -> bool:
        return serial in self._index_by_serial

    def atom_index(self, serial: int) -> int:
        """Return the list index of an atom.

        Raises
        ------
        NotFoundError
            If no atom has this serial.
        """
        try:
            return self._index_by_serial[serial]
        except KeyError:
            raise NotFoundError(f"Atom {serial} does not exist", {"serial": serial}) from None

    def atom(self, serial: int) -> Atom:
        return self.atoms[self.atom_index(serial)]

    def residue_of(self, serial: int) -> Residue:
        return self.residues[self.atom(serial).residue_index]

    def serials(self, indices: Iterable[int]) -> List[int]:
        return [self.atoms[index].serial for index in indices]

    def expand_residues(self, residue_indices: Iterable[int]) -> List[int]:
        """Return the serials of all atoms of the given residues, in residue order."""
        serials: List[int] = []
        for residue_index in residue_indices:
            residue = self.residues[residue_index]
            serials.extend(self.atoms[index].serial for index in residue.atom_indices)
        return serials

    def residues_of(self, serials: Iterable[int]) -> List[int]:
        """Return owning residue indices of atoms, first appearance order."""
        seen = dict.fromkeys(self.atom(serial).residue_index for serial in serials)
        return list(seen)

    # Coordinates ----------------------------------------------------------

    @property
    def coordinates_version(self) -> int:
        return self._coordinates_version

    def coordinates(self) -> np.ndarray:
        """Return a read-only view of the ``(N, 3)`` coordinate array."""
        view = self._coords.view()
        view.flags.writeable = False
        return view

    def update_coordinates(self, coords: Sequence[Sequence[float]]) -> None:
        """Replace all coordinates.

        Parameters
        ----------
        coords
            New ``(N, 3)`` coordinates in atom order.

        Raises
        ------
        StructureError
            If the shape does not match the atom count.
        """
        array = np.asarray(coords, dtype=np.float64)
        if array.shape != self._coords.shape:
            raise StructureError(
                "Coordinate shape does not match structure",
                {"expected": list(self._coords.shape), "got": list(array.shape)},
            )
        self._coords = array.copy()
        self.atoms = [
            _replace_coords(atom, tuple(float(v) for v in row))
            for atom, row in zip(self.atoms, self._coords)
        ]
        self._coordinates_version += 1
        logger.debug("Coordinates updated (version %d)", self._coordinates_version)

    # Region flags ---------------------------------------------------------

    def flags(self, index: int) -> Region:
        return self._flags[index]

    def flags_of(self, serial: int) -> Region:
        return self._flags[self.atom_index(serial)]

    def has_region(self, index: int, region: Region) -> bool:
        return bool(self._flags[index] & region)

    def snapshot_flags(self) -> Tuple[Region, ...]:
        return tuple(self._flags)

    def _write_flags(self, indices: Iterable[int], region: Region, value: bool) -> None:
        # Only the region editor writes flags.
        for index in indices:
            if value:
                self._flags[index] |= region
            else:
                self._flags[index] &= ~region

    def _restore_flags(self, flags: Sequence[Region]) -> None:
        self._flags = list(flags)

    def atoms_in(self, region: Region) -> Iterator[int]:
        """Yield serials of atoms carrying ``region``."""
        for atom, flags in zip(self.atoms, self._flags):
            if flags & region:
                yield atom.serial

    def residues_in(self, region: Region) -> Iterator[int]:
        """Yield indices of residues with at least one atom in ``region``."""
        for residue in self.residues:
            if any(self._flags[index] & region for index in residue.atom_indices):
                yield residue.index

    # Lookup ---------------------------------------------------------------

    def atoms_named(self, names: Iterable[str]) -> List[int]:
        wanted = {name.upper() for name in names}
        return [atom.serial for atom in self.atoms if atom.name.upper() in wanted]

    def residues_named(self, names: Iterable[str]) -> List[int]:
        wanted = {name.upper() for name in names}
        return [residue.index for residue in self.residues if residue.name.upper() in wanted]

    def resolve_ids(
        self, target: Target, tokens: Iterable[str], required: bool = False
    ) -> Tuple[int, ...]:
        """Resolve id list tokens to atom serials or residue indices.

        Parameters
        ----------
        target
            ``Target.ATOMS`` for atom ids, ``Target.RESIDUES`` for residue ids.
        tokens
            Tokens such as ``"5"``, ``"1-10"``, ``"3:7"`` or, for residues,
            ``"12A"`` and ``"9999A-4B"``. Tokens may contain commas.
        required
            Raise when nothing resolves.

        Returns
        -------
        tuple of int
            Atom serials or residue indices in order of appearance, without
            duplicates.

        Raises
        ------
        AmbiguousRangeError
            If a token is malformed, reversed, or mixes insertion codes.
        NotFoundError
            If an insertion-code range endpoint is missing, or if
            ``required`` and the result is empty.
        """

        resolved: Dict[int, None] = {}
        for token in _split_tokens(tokens):
            if target is Target.ATOMS:
                found = self._resolve_atom_token(token)
            else:
                found = self._resolve_residue_token(token)
            for item in found:
                resolved.setdefault(item, None)
        if required and not resolved:
            raise NotFoundError(
                f"No {target.value} match the given ids",
                {"tokens": list(_split_tokens(tokens))},
            )
        return tuple(resolved)

    def _resolve_atom_token(self, token: str) -> List[int]:
        match = _ATOM_TOKEN.match(token)
        if match is None:
            if _RESIDUE_TOKEN.match(token):
                raise AmbiguousRangeError(
                    f"Insertion codes are not valid for atom ids: '{token}'", {"token": token}
                )
            raise AmbiguousRangeError(f"Invalid atom id '{token}'", {"token": token})
        start = int(match.group(1))
        end = int(match.group(2)) if match.group(2) is not None else start
        if end < start:
            raise AmbiguousRangeError(f"Reversed range '{token}'", {"token": token})
        lo = bisect.bisect_left(self._sorted_serials, start)
        hi = bisect.bisect_right(self._sorted_serials, end)
        return self._sorted_serials[lo:hi]

    def _resolve_residue_token(self, token: str) -> List[int]:
        match = _RESIDUE_TOKEN.match(token)
        if match is None:
            raise AmbiguousRangeError(f"Invalid residue id '{token}'", {"token": token})
        start, start_icode, end, end_icode = match.groups()
        start = int(start)
        start_icode = start_icode.upper()
        if end is None:
            return self._lookup_residue(start, start_icode)

        end = int(end)
        end_icode = end_icode.upper()
        if bool(start_icode) != bool(end_icode):
            raise AmbiguousRangeError(
                f"Insertion code given on only one end of '{token}'", {"token": token}
            )
        if not start_icode:
            if end < start:
                raise AmbiguousRangeError(f"Reversed range '{token}'", {"token": token})
            lo = bisect.bisect_left(self._residue_serial_keys, (start, -1))
            hi = bisect.bisect_right(self._residue_serial_keys, (end, len(self.residues)))
            return [index for _, index in self._residue_serial_keys[lo:hi]]

        first = self._lookup_residue(start, start_icode)
        last = self._lookup_residue(end, end_icode)
        missing = [
            f"{number}{icode}"
            for number, icode, found in (
                (start, start_icode, first),
                (end, end_icode, last),
            )
            if not found
        ]
        if missing:
            raise NotFoundError(
                f"Residue {', '.join(missing)} does not exist", {"token": token}
            )
        begin = first[0]
        after = [index for index in last if index >= begin]
        if not after:
            raise AmbiguousRangeError(
                f"Range '{token}' runs backwards in structure order", {"token": token}
            )
        return list(range(begin, after[0] + 1))

    def _lookup_residue(self, number: int, icode: str) -> List[int]:
        found = self._residues_by_serial.get((number, icode))
        if found:
            return list(found)
        return list(self._residues_by_label.get((number, icode), ()))


def _replace_coords(atom: Atom, coords: Tuple[float, float, float]) -> Atom:
    return Atom(
        serial=atom.serial,
        file_serial=atom.file_serial,
        name=atom.name,
        element=atom.element,
        coords=coords,
        residue_index=atom.residue_index,
        record=atom.record,
        alt_loc=atom.alt_loc,
        line_index=atom.line_index,
    )


def _split_tokens(tokens: Iterable[str]) -> List[str]:
    if isinstance(tokens, str):
        tokens = [tokens]
    parts: List[str] = []
    for token in tokens:
        parts.extend(part.strip() for part in str(token).split(",") if part.strip())
    return parts


def build_structure(
    records: Sequence[AtomRecord],
    source_lines: Optional[Sequence[str]] = None,
    flags: Optional[Sequence[Region]] = None,
) -> Structure:
    """Build a Structure from raw atom records.

    Atom serials and residue numbers continue past the file field maximum:
    each time the field drops after reaching its maximum, a wrap counter is
    incremented and ``wraps * field_size`` is added.

    Parameters
    ----------
    records
        Atom records in file order.
    source_lines
        Optional source lines for pass-through writing.
    flags
        Optional initial region flags per record.

    Returns
    -------
    Structure
        Structure with continuation numbering.
    """

    atoms: List[Atom] = []
    residue_atoms: List[List[int]] = []
    residue_keys: List[Tuple[str, int, str, str]] = []
    residue_serials: List[int] = []

    seen_serials = set()
    previous_file_serial: Optional[int] = None
    previous_serial = 0
    atom_wraps = 0
    previous_key: Optional[Tuple[str, int, str]] = None
    previous_resnum: Optional[int] = None
    residue_wraps = 0

    for record in records:
        file_serial = record.serial
        if file_serial is None:
            serial = previous_serial + 1
        else:
            if (
                previous_file_serial is not None
                and previous_file_serial >= config.MAX_ATOM_SERIAL
                and file_serial < previous_file_serial
            ):
                atom_wraps += 1
            serial = file_serial + atom_wraps * config.ATOM_SERIAL_WRAP
            previous_file_serial = file_serial
        if serial in seen_serials:
            logger.warning(
                "Duplicate atom serial %d; renumbered to %d", serial, previous_serial + 1
            )
            serial = previous_serial + 1
        seen_serials.add(serial)
        previous_serial = serial

        key = (record.chain, record.resnum, record.icode)
        if key != previous_key:
            if (
                previous_resnum is not None
                and previous_resnum >= config.MAX_RESIDUE_NUMBER
                and record.resnum < previous_resnum
            ):
                residue_wraps += 1
            residue_keys.append((record.chain, record.resnum, record.icode, record.resname))
            residue_serials.append(record.resnum + residue_wraps * config.RESIDUE_NUMBER_WRAP)
            residue_atoms.append([])
            previous_key = key
            previous_resnum = record.resnum

        residue_atoms[-1].append(len(atoms))
        atoms.append(
            Atom(
                serial=serial,
                file_serial=file_serial,
                name=record.name,
                element=record.element,
                coords=record.coords,
                residue_index=len(residue_keys) - 1,
                record=record.record,
                alt_loc=record.alt_loc,
                line_index=record.line_index,
            )
        )

    residues = [
        Residue(
            index=index,
            serial=serial,
            number=number,
            icode=icode,
            name=resname,
            chain=chain,
            atom_indices=tuple(member_atoms),
            is_amino_acid=resname.upper() in config.AMINO_ACID_NAMES,
        )
        for index, ((chain, number, icode, resname), serial, member_atoms) in enumerate(
            zip(residue_keys, residue_serials, residue_atoms)
        )
    ]

    if residue_wraps:
        unlabeled = [r for r in residues if r.serial != r.number and not r.icode]
        if unlabeled:
            logger.warning(
                "Residue numbering wraps past %d and %d wrapped residues have no "
                "insertion code; add insertion codes to address them unambiguously",
                config.MAX_RESIDUE_NUMBER,
                len(unlabeled),
            )
    logger.debug("Built structure with %d atoms and %d residues", len(atoms), len(residues))
    return Structure(atoms, residues, flags=flags, source_lines=source_lines)
