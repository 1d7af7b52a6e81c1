"""Shared test fixtures for qmregions tests."""

from pathlib import Path

import pytest

from qmregions.model.session import Session
from qmregions.services.pdb_reader import structure_from_text


def pdb_line(
    serial,
    name,
    resname,
    resnum,
    xyz,
    icode="",
    record="ATOM",
    chain="A",
    occupancy=0.0,
    bfactor=0.0,
    element="",
):
    """Format one fixed-column ATOM/HETATM line."""
    name_field = name[:4] if len(name) >= 4 else f" {name:<3}"
    serial_field = f"{serial:5d}" if isinstance(serial, int) else f"{serial:>5}"
    element = element or name[0]
    x, y, z = xyz
    return (
        f"{record:<6}{serial_field} {name_field} {resname:>3} {chain:1}{resnum:4d}{icode:1}   "
        f"{x:8.3f}{y:8.3f}{z:8.3f}{occupancy:6.2f}{bfactor:6.2f}          {element:>2}"
    )


def build_pdb(rows, header=True):
    """Join atom lines into PDB text, optionally with a header and END."""
    lines = ["REMARK   1 TEST STRUCTURE"] if header else []
    lines.extend(rows)
    lines.append("END")
    return "\n".join(lines) + "\n"


# Five residues on the x axis. ALA, GLY and SER are far apart; the HOH oxygen
# and the LIG C1 atom are 0.66 A apart.
SMALL_ATOMS = [
    (1, "N", "ALA", 1, (0.0, 0.0, 0.0)),
    (2, "CA", "ALA", 1, (1.5, 0.0, 0.0)),
    (3, "C", "ALA", 1, (3.0, 0.0, 0.0)),
    (4, "O", "ALA", 1, (3.0, 1.5, 0.0)),
    (5, "CB", "ALA", 1, (1.5, 1.25, 0.0)),
    (6, "N", "GLY", 2, (10.0, 0.0, 0.0)),
    (7, "H", "GLY", 2, (10.0, -1.0, 0.0)),
    (8, "CA", "GLY", 2, (11.5, 0.0, 0.0)),
    (9, "HA2", "GLY", 2, (11.5, -1.0, 0.0)),
    (10, "HA3", "GLY", 2, (11.5, 1.0, 0.0)),
    (11, "C", "GLY", 2, (13.0, 0.0, 0.0)),
    (12, "O", "GLY", 2, (13.0, 1.5, 0.0)),
    (13, "N", "SER", 3, (20.0, 0.0, 0.0)),
    (14, "CA", "SER", 3, (21.5, 0.0, 0.0)),
    (15, "C", "SER", 3, (23.0, 0.0, 0.0)),
    (16, "O", "SER", 3, (23.0, 1.5, 0.0)),
    (17, "CB", "SER", 3, (21.5, 1.5, 0.0)),
    (18, "OG", "SER", 3, (21.5, 3.0, 0.0)),
    (19, "O", "HOH", 4, (30.0, 0.0, 0.0)),
    (20, "H1", "HOH", 4, (30.0, 1.0, 0.0)),
    (21, "H2", "HOH", 4, (30.0, -1.0, 0.0)),
]

LIGAND_ATOMS = [
    (22, "C1", "LIG", 5, (30.66, 0.0, 0.0)),
    (23, "C2", "LIG", 5, (30.66, 0.0, 1.5)),
]


def small_pdb_text():
    rows = [pdb_line(*atom) for atom in SMALL_ATOMS]
    rows.append("TER")
    rows.extend(pdb_line(*atom, record="HETATM") for atom in LIGAND_ATOMS)
    return build_pdb(rows)


@pytest.fixture
def pdb_text():
    return small_pdb_text()


@pytest.fixture
def structure(pdb_text):
    return structure_from_text(pdb_text)


@pytest.fixture
def pdb_path(tmp_path, pdb_text) -> Path:
    path = tmp_path / "small.pdb"
    path.write_text(pdb_text, encoding="utf-8")
    return path


@pytest.fixture
def session(pdb_path):
    return Session.load(str(pdb_path))
