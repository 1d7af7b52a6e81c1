"""PDB formatting utilities."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Tuple

from qmregions import config
from qmregions.errors import StructureError
from qmregions.model.state import Atom, Region
from qmregions.model.store import Structure

logger = logging.getLogger(__name__)


def _format_atom_name(name: str) -> str:
    name = (name or "").strip()
    if len(name) >= 4:
        return name[:4]
    return f" {name:<3}"


def _format_resname(resname: str) -> str:
    resname = (resname or "").strip()
    if len(resname) > 3:
        return resname[:3]
    return resname.rjust(3)


def _format_element(element: str) -> str:
    element = (element or "").strip()
    if not element:
        return "  "
    if len(element) == 1:
        return f" {element.upper()}"
    return element[0].upper() + element[1].lower()


def region_columns(flags: Region) -> Tuple[float, float]:
    """Return the occupancy and B-factor values encoding ``flags``."""
    if flags & Region.QM1:
        occupancy = config.QM1_OCCUPANCY
    elif flags & Region.QM2:
        occupancy = config.QM2_OCCUPANCY
    else:
        occupancy = 0.0
    bfactor = config.ACTIVE_BFACTOR if flags & Region.ACTIVE else 0.0
    return occupancy, bfactor


def _format_atom(structure: Structure, atom: Atom, occupancy: float, bfactor: float) -> str:
    residue = structure.residues[atom.residue_index]
    serial = atom.file_serial if atom.file_serial is not None else atom.serial
    serial %= config.ATOM_SERIAL_WRAP
    x, y, z = atom.coords
    return (
        f"{atom.record:<6}"
        f"{serial:5d} "
        f"{_format_atom_name(atom.name)}"
        f"{(atom.alt_loc or ' ')[:1]}"
        f"{_format_resname(residue.name)} "
        f"{(residue.chain or ' ')[:1]}"
        f"{residue.number:4d}"
        f"{(residue.icode or ' ')[:1]}   "
        f"{x:8.3f}{y:8.3f}{z:8.3f}"
        f"{occupancy:6.2f}{bfactor:6.2f}"
        f"          "
        f"{_format_element(atom.element):>2}"
    )


def write_pdb(structure: Structure) -> str:
    """Build PDB text for a structure with its current region flags.

    Lines read from the source file are kept verbatim except for the
    occupancy and B-factor columns of atom records. Structures without
    source lines are formatted from scratch.

    Parameters
    ----------
    structure
        Structure to serialize.

    Returns
    -------
    str
        PDB text ending in a newline.
    """

    both = 0
    columns = []
    for index, atom in enumerate(structure.atoms):
        flags = structure.flags(index)
        if flags & Region.QM1 and flags & Region.QM2:
            both += 1
        columns.append(region_columns(flags))
    if both:
        logger.warning("%d atoms are in both QM1 and QM2; writing them as QM1", both)

    lines: List[str]
    if structure.source_lines is not None:
        lines = list(structure.source_lines)
        for atom, (occupancy, bfactor) in zip(structure.atoms, columns):
            if atom.line_index is None:
                continue
            line = lines[atom.line_index].ljust(66)
            lines[atom.line_index] = f"{line[:54]}{occupancy:6.2f}{bfactor:6.2f}{line[66:]}"
    else:
        lines = [
            _format_atom(structure, atom, occupancy, bfactor)
            for atom, (occupancy, bfactor) in zip(structure.atoms, columns)
        ]
        lines.append("END")
    return "\n".join(lines) + "\n"


def write_id_list(ids: Iterable[object]) -> str:
    """Return one id per line."""
    return "".join(f"{item}\n" for item in ids)


def write_text(path: str, text: str) -> None:
    """Write text to ``path``.

    Raises
    ------
    StructureError
        If the file cannot be written.
    """
    try:
        Path(path).write_text(text, encoding="utf-8")
    except OSError as exc:
        raise StructureError(f"Cannot write '{path}'", str(exc), kind="io_error") from exc
    logger.info("Wrote %s", path)
