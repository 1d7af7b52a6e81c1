"""Model package exports."""

from qmregions.model.editor import RegionEditor
from qmregions.model.spatial import ContactPair, SpatialIndex
from qmregions.model.state import (
    Atom,
    AtomRecord,
    EditOp,
    HistoryEntry,
    Partial,
    Region,
    Residue,
    SelectionResult,
    Target,
)
from qmregions.model.store import Structure, build_structure

__all__ = [
    "Atom",
    "AtomRecord",
    "ContactPair",
    "EditOp",
    "HistoryEntry",
    "Partial",
    "Region",
    "RegionEditor",
    "Residue",
    "SelectionResult",
    "SpatialIndex",
    "Structure",
    "Target",
    "build_structure",
]
