"""Dataclasses and enums for structure and region state."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


class Region(enum.Flag):
    """Region membership bits carried by each atom."""

    NONE = 0
    QM1 = enum.auto()
    QM2 = enum.auto()
    ACTIVE = enum.auto()

    @property
    def label(self) -> str:
        return _REGION_LABELS.get(self, self.name or "")

    @classmethod
    def singles(cls) -> Tuple["Region", ...]:
        return (cls.QM1, cls.QM2, cls.ACTIVE)


_REGION_LABELS = {Region.QM1: "QM1", Region.QM2: "QM2", Region.ACTIVE: "Active"}


class Target(enum.Enum):
    """Kind of ids held by a selection result."""

    ATOMS = "atoms"
    RESIDUES = "residues"


class Partial(enum.Enum):
    """Restriction of a mutation to part of each amino-acid residue."""

    ALL = "all"
    BACKBONE = "backbone"
    SIDECHAIN = "sidechain"


class EditOp(enum.Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class AtomRecord:
    """Raw atom record as read from a structure file.

    Attributes
    ----------
    record
        Record type (``ATOM`` or ``HETATM``).
    serial
        Atom serial field, or None when the field is not an integer.
    name
        Atom name.
    alt_loc
        Alternate location indicator.
    resname
        Residue name.
    chain
        Chain identifier.
    resnum
        Residue number field.
    icode
        Insertion code (empty string when absent).
    coords
        Cartesian coordinates.
    occupancy
        Occupancy column value.
    bfactor
        Temperature factor column value.
    element
        Element symbol.
    line_index
        Index of the source line, or None for synthesized records.
    """

    record: str
    serial: Optional[int]
    name: str
    resname: str
    chain: str
    resnum: int
    coords: Tuple[float, float, float]
    icode: str = ""
    alt_loc: str = ""
    occupancy: float = 0.0
    bfactor: float = 0.0
    element: str = ""
    line_index: Optional[int] = None


@dataclass(frozen=True)
class Atom:
    """Atom with its internal continuation serial.

    Attributes
    ----------
    serial
        Internal atom id, continuing past the file field maximum.
    file_serial
        Serial as written in the file.
    name
        Atom name.
    element
        Element symbol.
    coords
        Cartesian coordinates.
    residue_index
        0-based index of the owning residue.
    record
        Record type of the source line.
    line_index
        Index of the source line, or None.
    """

    serial: int
    file_serial: Optional[int]
    name: str
    element: str
    coords: Tuple[float, float, float]
    residue_index: int
    record: str = "ATOM"
    alt_loc: str = ""
    line_index: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        """Serialize atom metadata.

        Returns
        -------
        dict
            JSON-ready atom metadata.
        """
        return {
            "serial": self.serial,
            "file_serial": self.file_serial,
            "name": self.name,
            "element": self.element,
            "coords": list(self.coords),
            "residue_index": self.residue_index,
        }


@dataclass(frozen=True)
class Residue:
    """Residue in structure order.

    Attributes
    ----------
    index
        0-based ordinal in the structure; the internal residue id.
    serial
        Residue number continuing past the file field maximum.
    number
        Residue number as written in the file.
    icode
        Insertion code (empty string when absent).
    name
        Residue name.
    chain
        Chain identifier.
    atom_indices
        Indices of member atoms in the structure atom list.
    is_amino_acid
        Whether the residue name is a known amino acid.
    """

    index: int
    serial: int
    number: int
    icode: str
    name: str
    chain: str
    atom_indices: Tuple[int, ...]
    is_amino_acid: bool

    @property
    def label(self) -> str:
        return f"{self.number}{self.icode}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "index": self.index,
            "serial": self.serial,
            "number": self.number,
            "icode": self.icode,
            "name": self.name,
            "chain": self.chain,
            "atoms": len(self.atom_indices),
        }


@dataclass(frozen=True)
class SelectionResult:
    """Ordered, duplicate-free ids produced by a selection.

    Attributes
    ----------
    target
        Whether ``ids`` are atom serials or residue indices.
    ids
        Ids in evaluation order.
    """

    target: Target
    ids: Tuple[int, ...] = ()

    def __len__(self) -> int:
        return len(self.ids)

    def __bool__(self) -> bool:
        return bool(self.ids)

    @classmethod
    def of(cls, target: Target, ids) -> "SelectionResult":
        return cls(target, tuple(dict.fromkeys(ids)))


@dataclass(frozen=True)
class FlagChange:
    """One batch of flag flips.

    Attributes
    ----------
    region
        Region bit that was flipped.
    atom_indices
        Atoms whose bit changed.
    value
        New value of the bit; the previous value is its negation.
    """

    region: Region
    atom_indices: Tuple[int, ...]
    value: bool


@dataclass(frozen=True)
class HistoryEntry:
    """Record of one applied mutation.

    Attributes
    ----------
    op
        Operation kind.
    region
        Region targeted, or None for a multi-region clear or import.
    partial
        Partial mode used.
    selection
        Resolved atom serials the mutation was asked to touch.
    changes
        Flag flips actually performed.
    label
        Human-readable description.
    """

    op: EditOp
    region: Optional[Region]
    partial: Partial
    selection: Tuple[int, ...]
    changes: Tuple[FlagChange, ...]
    label: str = ""

    @property
    def flipped(self) -> int:
        return sum(len(change.atom_indices) for change in self.changes)
