import logging

import pytest

from conftest import build_pdb, pdb_line
from qmregions.errors import AmbiguousRangeError, NotFoundError
from qmregions.model.state import Region, Target
from qmregions.services.pdb_reader import structure_from_text


def _labels(structure, indices):
    return [structure.residues[index].label for index in indices]


def _wrapped_residue_text():
    rows = [
        pdb_line(1, "CA", "ALA", 1, (0.0, 0.0, 0.0)),
        pdb_line(2, "CA", "GLY", 9998, (5.0, 0.0, 0.0)),
        pdb_line(3, "CA", "GLY", 9999, (10.0, 0.0, 0.0)),
        pdb_line(4, "CA", "SER", 0, (15.0, 0.0, 0.0)),
        pdb_line(5, "CA", "THR", 1, (20.0, 0.0, 0.0)),
    ]
    return build_pdb(rows)


def _insertion_code_text():
    rows = [pdb_line(1, "CA", "ALA", 9998, (0.0, 0.0, 0.0), icode="A")]
    rows.append(pdb_line(2, "CA", "ALA", 9999, (2.0, 0.0, 0.0), icode="A"))
    for offset, number in enumerate(range(0, 11)):
        rows.append(pdb_line(3 + offset, "CA", "GLY", number, (4.0 + 2 * offset, 0.0, 0.0), icode="B"))
    return build_pdb(rows)


def test_structure_counts_and_residue_grouping(structure) -> None:
    assert structure.atom_count == 23
    assert structure.residue_count == 5
    assert [residue.name for residue in structure.residues] == ["ALA", "GLY", "SER", "HOH", "LIG"]
    assert structure.residues[0].is_amino_acid
    assert not structure.residues[3].is_amino_acid
    assert structure.residue_of(22).name == "LIG"


def test_resolve_atom_ranges_keeps_order_and_collapses_duplicates(structure) -> None:
    ids = structure.resolve_ids(Target.ATOMS, ["1-8,19:27,5"])
    assert ids == (1, 2, 3, 4, 5, 6, 7, 8, 19, 20, 21, 22, 23)


def test_resolve_atom_ids_skips_missing(structure) -> None:
    assert structure.resolve_ids(Target.ATOMS, ["500"]) == ()
    with pytest.raises(NotFoundError):
        structure.resolve_ids(Target.ATOMS, ["500"], required=True)


@pytest.mark.parametrize("token", ["8-3", "abc", "1A", "1-"])
def test_resolve_atom_ids_rejects_malformed_tokens(structure, token) -> None:
    with pytest.raises(AmbiguousRangeError):
        structure.resolve_ids(Target.ATOMS, [token])


def test_resolve_residue_ids(structure) -> None:
    assert structure.resolve_ids(Target.RESIDUES, ["2-4", "1"]) == (1, 2, 3, 0)


@pytest.mark.parametrize("token", ["4-2", "1A-3", "x"])
def test_resolve_residue_ids_rejects_malformed_tokens(structure, token) -> None:
    with pytest.raises(AmbiguousRangeError):
        structure.resolve_ids(Target.RESIDUES, [token])


def test_names_match_case_insensitively(structure) -> None:
    assert structure.atoms_named(["ca"]) == [2, 8, 14]
    assert structure.residues_named(["hoh", "Lig"]) == [3, 4]
    assert structure.atoms_named(["C"]) == [3, 11, 15]


def test_region_membership_from_flags() -> None:
    rows = [
        pdb_line(1, "N", "ALA", 1, (0.0, 0.0, 0.0), occupancy=1.0, bfactor=1.0),
        pdb_line(2, "CA", "ALA", 1, (1.5, 0.0, 0.0), occupancy=2.0),
        pdb_line(3, "O", "HOH", 2, (9.0, 0.0, 0.0), bfactor=1.0),
    ]
    structure = structure_from_text(build_pdb(rows))
    assert list(structure.atoms_in(Region.QM1)) == [1]
    assert list(structure.atoms_in(Region.QM2)) == [2]
    assert list(structure.atoms_in(Region.ACTIVE)) == [1, 3]
    assert list(structure.residues_in(Region.ACTIVE)) == [0, 1]


def test_atom_serials_continue_past_wrap() -> None:
    rows = [
        pdb_line(99998, "CA", "ALA", 1, (0.0, 0.0, 0.0)),
        pdb_line(99999, "CA", "GLY", 2, (5.0, 0.0, 0.0)),
        pdb_line(0, "CA", "SER", 3, (10.0, 0.0, 0.0)),
        pdb_line(1, "CA", "THR", 4, (15.0, 0.0, 0.0)),
    ]
    structure = structure_from_text(build_pdb(rows))
    assert [atom.serial for atom in structure.atoms] == [99998, 99999, 100000, 100001]
    assert [atom.file_serial for atom in structure.atoms] == [99998, 99999, 0, 1]
    assert structure.resolve_ids(Target.ATOMS, ["99999-100001"]) == (99999, 100000, 100001)


def test_unparsable_atom_serials_continue_numbering() -> None:
    rows = [
        pdb_line(7, "CA", "ALA", 1, (0.0, 0.0, 0.0)),
        pdb_line("*****", "CB", "ALA", 1, (1.5, 0.0, 0.0)),
    ]
    structure = structure_from_text(build_pdb(rows))
    assert [atom.serial for atom in structure.atoms] == [7, 8]


def test_wrapped_residue_is_distinct_from_genuine_number(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="qmregions.model.store"):
        structure = structure_from_text(_wrapped_residue_text())
    assert [residue.serial for residue in structure.residues] == [1, 9998, 9999, 10000, 10001]
    assert structure.resolve_ids(Target.RESIDUES, ["1"]) == (0,)
    assert structure.resolve_ids(Target.RESIDUES, ["10001"]) == (4,)
    assert structure.resolve_ids(Target.RESIDUES, ["9999-10001"]) == (2, 3, 4)
    assert "insertion code" in caplog.text


def test_insertion_code_ranges_expand_in_structure_order(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="qmregions.model.store"):
        structure = structure_from_text(_insertion_code_text())
    ids = structure.resolve_ids(Target.RESIDUES, ["9999A:1B,6B,8B-10B"])
    assert _labels(structure, ids) == ["9999A", "0B", "1B", "6B", "8B", "9B", "10B"]
    assert "insertion code" not in caplog.text


def test_insertion_code_range_with_missing_endpoint(caplog) -> None:
    structure = structure_from_text(_insertion_code_text())
    with pytest.raises(NotFoundError):
        structure.resolve_ids(Target.RESIDUES, ["9999A-20B"])
    with pytest.raises(AmbiguousRangeError):
        structure.resolve_ids(Target.RESIDUES, ["5B-9999A"])


def test_update_coordinates_bumps_version(structure) -> None:
    coords = structure.coordinates().copy()
    coords[0] = (100.0, 0.0, 0.0)
    version = structure.coordinates_version
    structure.update_coordinates(coords)
    assert structure.coordinates_version == version + 1
    assert structure.atom(1).coords == (100.0, 0.0, 0.0)
