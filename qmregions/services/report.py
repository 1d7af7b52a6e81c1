"""Tabular reports for queries, region analysis and contact scans."""

from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from qmregions.model.spatial import ContactPair
from qmregions.model.state import Region
from qmregions.model.store import Structure
from qmregions.services.pdb_writer import region_columns

ATOM_COLUMNS = ["Atom ID", "Atom name", "Residue ID", "Residue Name", "QM", "Active"]
SUMMARY_COLUMNS = ["Region", "# of Atoms", "# of Residues"]
CONTACT_COLUMNS = [
    "Atom ID 1",
    "Atom Name 1",
    "Residue Name 1",
    "Atom ID 2",
    "Atom Name 2",
    "Residue Name 2",
    "Distance",
]


def atom_table(structure: Structure, serials: Iterable[int]) -> pd.DataFrame:
    """Return one row per atom, in structure order.

    Parameters
    ----------
    structure
        Structure holding the atoms.
    serials
        Atom serials to list.

    Returns
    -------
    pandas.DataFrame
        Columns from ``ATOM_COLUMNS``; QM and Active hold the occupancy and
        B-factor values that would be written.
    """

    indices = sorted(structure.atom_index(serial) for serial in set(serials))
    rows = []
    for index in indices:
        atom = structure.atoms[index]
        residue = structure.residues[atom.residue_index]
        occupancy, bfactor = region_columns(structure.flags(index))
        rows.append(
            {
                "Atom ID": atom.serial,
                "Atom name": atom.name,
                "Residue ID": residue.label,
                "Residue Name": residue.name,
                "QM": occupancy,
                "Active": bfactor,
            }
        )
    if not rows:
        return _empty_table(ATOM_COLUMNS)
    return pd.DataFrame(rows, columns=ATOM_COLUMNS)


def region_summary(structure: Structure) -> pd.DataFrame:
    """Count atoms and residues per region, plus the structure totals."""
    rows = []
    for region in Region.singles():
        rows.append(
            {
                "Region": region.label,
                "# of Atoms": sum(1 for _ in structure.atoms_in(region)),
                "# of Residues": sum(1 for _ in structure.residues_in(region)),
            }
        )
    rows.append(
        {
            "Region": "Total",
            "# of Atoms": structure.atom_count,
            "# of Residues": structure.residue_count,
        }
    )
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def residue_detail(structure: Structure, region: Region) -> pd.DataFrame:
    """List residues in ``region`` with their member and in-region atom counts."""
    in_region = f"# of {region.label} Atoms"
    columns = ["Residue ID", "Residue Name", "# of Atoms", in_region]
    rows = []
    for residue_index in structure.residues_in(region):
        residue = structure.residues[residue_index]
        rows.append(
            {
                "Residue ID": residue.label,
                "Residue Name": residue.name,
                "# of Atoms": len(residue.atom_indices),
                in_region: sum(
                    1 for index in residue.atom_indices if structure.has_region(index, region)
                ),
            }
        )
    if not rows:
        return _empty_table(columns)
    return pd.DataFrame(rows, columns=columns)


def region_atoms(structure: Structure, region: Region) -> pd.DataFrame:
    return atom_table(structure, structure.atoms_in(region))


def contact_table(structure: Structure, pairs: Sequence[ContactPair]) -> pd.DataFrame:
    """Return one row per atom pair with the distance rounded to 2 decimals."""
    rows = []
    for pair in pairs:
        first = structure.atom(pair.first)
        second = structure.atom(pair.second)
        rows.append(
            [
                first.serial,
                first.name,
                structure.residues[first.residue_index].name,
                second.serial,
                second.name,
                structure.residues[second.residue_index].name,
                round(pair.distance, 2),
            ]
        )
    if not rows:
        return _empty_table(CONTACT_COLUMNS)
    return pd.DataFrame(rows, columns=CONTACT_COLUMNS)


def _empty_table(columns: Iterable[str]) -> pd.DataFrame:
    return pd.DataFrame({column: pd.Series(dtype=object) for column in columns})


def df_to_table(df: pd.DataFrame) -> Dict[str, object]:
    """Serialize a DataFrame as ``{"columns": [...], "rows": [[...], ...]}``."""
    safe = df.astype(object).where(pd.notnull(df), None)
    columns = [str(col) for col in safe.columns]
    rows = [[_to_native(value) for value in row] for row in safe.itertuples(index=False)]
    return {"columns": columns, "rows": rows}


def _to_native(value: object) -> Optional[object]:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, (np.integer, np.floating)):
        return value.item()
    if isinstance(value, np.bool_):
        return bool(value)
    return value


def render_table(table: Dict[str, object]) -> str:
    """Render a serialized table as aligned text."""
    rows: List[List[object]] = list(table.get("rows") or [])
    if not rows:
        return "(no rows)"
    df = pd.DataFrame(rows, columns=table.get("columns"))
    return df.to_string(index=False)


def render_payload(payload: Dict[str, object]) -> str:
    """Render a command payload for the terminal.

    Parameters
    ----------
    payload
        Payload returned by ``Session.execute``.

    Returns
    -------
    str
        Human-readable text; errors render as ``Error (<kind>): <message>``.
    """

    if not payload.get("ok", False):
        error = payload.get("error") or {}
        return f"Error ({error.get('kind')}): {error.get('message')}"
    parts: List[str] = []
    message = payload.get("message")
    if message:
        parts.append(str(message))
    for key in ("summary", "table", "detail"):
        table = payload.get(key)
        if isinstance(table, dict):
            parts.append(render_table(table))
    commands = payload.get("commands")
    if commands and not payload.get("path"):
        parts.append("\n".join(str(command) for command in commands))
    text = payload.get("text")
    if text:
        parts.append(str(text).rstrip("\n"))
    return "\n\n".join(parts)
