"""Fixed-column PDB reader."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from qmregions import config
from qmregions.errors import StructureError
from qmregions.model.state import AtomRecord, Region
from qmregions.model.store import Structure, build_structure

logger = logging.getLogger(__name__)

_ATOM_RECORDS = ("ATOM  ", "HETATM")


def _optional_int(text: str) -> Optional[int]:
    try:
        return int(text)
    except ValueError:
        return None


def _float_or_zero(text: str) -> float:
    text = text.strip()
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def _guess_element(name: str) -> str:
    letters = [char for char in name if char.isalpha()]
    return letters[0].upper() if letters else ""


def _parse_atom_line(line: str, line_index: int) -> AtomRecord:
    padded = line.ljust(80)
    try:
        resnum = int(padded[22:26])
    except ValueError as exc:
        raise StructureError(
            f"Invalid residue number on line {line_index + 1}",
            {"line": line_index + 1, "text": line},
        ) from exc
    try:
        coords = (float(padded[30:38]), float(padded[38:46]), float(padded[46:54]))
    except ValueError as exc:
        raise StructureError(
            f"Invalid coordinates on line {line_index + 1}",
            {"line": line_index + 1, "text": line},
        ) from exc
    name = padded[12:16].strip()
    return AtomRecord(
        record=padded[0:6].strip(),
        serial=_optional_int(padded[6:11]),
        name=name,
        alt_loc=padded[16].strip(),
        resname=padded[17:20].strip(),
        chain=padded[21].strip(),
        resnum=resnum,
        icode=padded[26].strip().upper(),
        coords=coords,
        occupancy=_float_or_zero(padded[54:60]),
        bfactor=_float_or_zero(padded[60:66]),
        element=padded[76:78].strip() or _guess_element(name),
        line_index=line_index,
    )


def parse_pdb_text(text: str) -> Tuple[List[AtomRecord], List[str]]:
    """Parse PDB text.

    Only the first model is read; everything from the first ``ENDMDL`` on is
    kept as source text but not parsed.

    Parameters
    ----------
    text
        PDB file contents.

    Returns
    -------
    tuple
        Atom records and the source lines.

    Raises
    ------
    StructureError
        If an atom line has an invalid residue number or coordinates.
    """

    lines = text.splitlines()
    records: List[AtomRecord] = []
    for index, line in enumerate(lines):
        if line.startswith("ENDMDL"):
            break
        if line[:6] in _ATOM_RECORDS:
            records.append(_parse_atom_line(line, index))
    return records, lines


def region_flags(record: AtomRecord) -> Region:
    """Decode region membership from the occupancy and B-factor columns."""
    flags = Region.NONE
    if abs(record.occupancy - config.QM1_OCCUPANCY) < config.FLAG_TOLERANCE:
        flags |= Region.QM1
    elif abs(record.occupancy - config.QM2_OCCUPANCY) < config.FLAG_TOLERANCE:
        flags |= Region.QM2
    if abs(record.bfactor - config.ACTIVE_BFACTOR) < config.FLAG_TOLERANCE:
        flags |= Region.ACTIVE
    return flags


def structure_from_text(text: str) -> Structure:
    """Build a Structure with region flags from PDB text."""
    records, lines = parse_pdb_text(text)
    if not records:
        raise StructureError("No ATOM or HETATM records found")
    flags = [region_flags(record) for record in records]
    return build_structure(records, source_lines=lines, flags=flags)


def load_structure(path: str) -> Structure:
    """Read a PDB file into a Structure.

    Parameters
    ----------
    path
        Path to the PDB file.

    Returns
    -------
    Structure
        Structure with region flags decoded from occupancy and B-factor.

    Raises
    ------
    StructureError
        If the file cannot be read or parsed.
    """

    logger.debug("Loading PDB file %s", path)
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise StructureError(f"Cannot read '{path}'", str(exc), kind="io_error") from exc
    structure = structure_from_text(text)
    logger.info(
        "Loaded %s: %d atoms, %d residues",
        path,
        structure.atom_count,
        structure.residue_count,
    )
    return structure
