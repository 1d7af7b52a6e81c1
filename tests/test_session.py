import pytest

from qmregions.errors import InvalidCombinationError, ParseError
from qmregions.model.session import Session, run_batch, validate_commands
from qmregions.model.state import Region


def _members(session, region):
    return list(session.structure.atoms_in(region))


def test_add_and_remove_messages(session) -> None:
    payload = session.execute("add --qm1 resid 1")
    assert payload == {"ok": True, "message": "Added 5 atoms to QM1", "changed": 5}
    assert session.execute("a -q resid 1")["changed"] == 0
    assert session.execute("remove --qm1 id 1")["message"] == "Removed 1 atoms from QM1"
    assert session.execute("r")["message"] == "Removed 4 atoms from all regions"


def test_partial_edits_from_commands(session) -> None:
    session.execute("add --qm1 --backbone resid 1")
    session.execute("add -o -d resid 1 or resid 3")
    assert _members(session, Region.QM1) == [1, 2, 3, 4]
    assert _members(session, Region.QM2) == [5, 17, 18]


def test_selection_from_file(session, tmp_path) -> None:
    selection = tmp_path / "selection.txt"
    selection.write_text("# glycine\nresid 2\n", encoding="utf-8")
    payload = session.execute(f"add --qm2 --file {selection}")
    assert payload["message"] == "Added 7 atoms to QM2"


@pytest.mark.parametrize(
    "line, kind",
    [
        ("bogus 1", "parse_error"),
        ("add resid 1", "invalid_combination"),
        ("remove resid 1", "invalid_combination"),
        ("add --qm1 --qm2 resid 1", "parse_error"),
        ("add --qm1 name", "parse_error"),
        ("query sphere 404 2.0", "not_found"),
        ("query id 5-3", "ambiguous_range"),
        ("measure id 1", "geometry_error"),
        ("analyze --qm1", "invalid_combination"),
        ("write --overwrite --qm1 --atoms", "invalid_combination"),
        ("import missing.txt", "io_error"),
    ],
)
def test_errors_are_payloads_and_leave_state(session, line, kind) -> None:
    before = session.structure.snapshot_flags()
    payload = session.execute(line)
    assert payload["ok"] is False
    assert payload["error"]["kind"] == kind
    assert session.structure.snapshot_flags() == before
    assert session.editor.history == ()


def test_query_atoms_and_residues(session) -> None:
    session.execute("add --qm1 id 2")
    atoms = session.execute("query name CA")
    assert atoms["target"] == "atoms"
    assert atoms["selected"] == [2, 8, 14]
    assert atoms["message"] == "3 atoms selected"
    assert atoms["table"]["rows"][0] == [2, "CA", "1", "ALA", 1.0, 0.0]

    residues = session.execute("q resid 1-2")
    assert residues["target"] == "residues"
    assert residues["selected"] == ["1", "2"]
    assert residues["count"] == 2
    assert len(residues["table"]["rows"]) == 12


def test_query_with_no_match_is_empty(session) -> None:
    payload = session.execute("query name ZZ")
    assert payload["ok"] is True
    assert payload["count"] == 0
    assert payload["table"]["rows"] == []


def test_analyze_summary_and_detail(session) -> None:
    session.execute("add --qm1 resid 1")
    session.execute("add --active resid 4")
    payload = session.execute("analyze")
    assert payload["summary"]["rows"] == [
        ["QM1", 5, 1],
        ["QM2", 0, 0],
        ["Active", 3, 1],
        ["Total", 23, 5],
    ]
    detail = session.execute("y --qm1 --residues")["detail"]
    assert detail["columns"] == ["Residue ID", "Residue Name", "# of Atoms", "# of QM1 Atoms"]
    assert detail["rows"] == [["1", "ALA", 5, 5]]
    atoms = session.execute("analyze -a -t")["detail"]
    assert [row[0] for row in atoms["rows"]] == [19, 20, 21]


def test_analyze_clashes_and_contacts(session) -> None:
    clashes = session.execute("analyze --clashes")
    assert clashes["message"] == "1 clashes found"
    row = clashes["table"]["rows"][0]
    assert row[:6] == [19, "O", "HOH", 22, "C1", "LIG"]
    assert row[6] == pytest.approx(0.66)
    assert session.execute("analyze --contacts 1.7")["message"] == "4 contacts found"
    assert session.execute("analyze --contacts")["ok"] is True


def test_measure_messages(session) -> None:
    assert session.execute("measure id 1 2")["message"] == "Distance: 1.500 Å"
    payload = session.execute("m id 1,2,5")
    assert payload["message"] == "Angle: 90.0°"
    assert payload["measurement"]["atoms"] == [1, 2, 5]


def test_undo_redo_messages(session) -> None:
    assert session.execute("undo")["message"] == "Nothing to undo"
    session.execute("add --qm1 resid 1")
    assert session.execute("undo")["message"] == "Undid: add QM1 all (5 atoms)"
    assert _members(session, Region.QM1) == []
    assert session.execute("redo")["message"] == "Redid: add QM1 all (5 atoms)"
    assert session.execute("redo")["message"] == "Nothing to redo"


def test_write_structure_and_id_lists(session, tmp_path) -> None:
    session.execute("add --qm1 resid 1")
    assert session.execute("write --qm1 --atoms")["text"] == "1\n2\n3\n4\n5\n"
    assert session.execute("w -q -r")["text"] == "1\n"
    target = tmp_path / "out.pdb"
    payload = session.execute(f"write --file {target}")
    assert payload["path"] == str(target)
    reloaded = Session.load(str(target))
    assert _members(reloaded, Region.QM1) == [1, 2, 3, 4, 5]


def test_write_overwrite(session, pdb_path) -> None:
    session.execute("add --active resid 5")
    assert session.execute("write --overwrite")["path"] == str(pdb_path)
    assert _members(Session.load(str(pdb_path)), Region.ACTIVE) == [22, 23]


def test_overwrite_needs_source_path(structure) -> None:
    with pytest.raises(InvalidCombinationError):
        Session(structure).write(overwrite=True)


def test_export_then_import(session, tmp_path) -> None:
    session.execute("add --qm1 id 1-3")
    assert session.execute("export")["commands"] == ["add --qm1 id 1-3"]
    saved = tmp_path / "regions.txt"
    payload = session.execute(f"export --file {saved}")
    assert payload["message"] == f"Exported 1 commands to {saved}"
    assert saved.read_text(encoding="utf-8") == "add --qm1 id 1-3\n"

    session.execute("add --qm2 resid 3")
    payload = session.execute(f"import {saved}")
    assert payload["message"] == "Imported 1 commands"
    assert _members(session, Region.QM1) == [1, 2, 3]
    assert _members(session, Region.QM2) == []

    assert session.execute("undo")["message"].startswith("Undid: import")
    assert _members(session, Region.QM2) == [13, 14, 15, 16, 17, 18]


def test_import_rejects_non_region_commands(session) -> None:
    session.execute("add --qm1 resid 2")
    before = session.structure.snapshot_flags()
    with pytest.raises(InvalidCombinationError):
        session.import_state(["add --qm2 id 1", "query id 1"])
    assert session.structure.snapshot_flags() == before


def test_validate_commands_reports_line_number() -> None:
    with pytest.raises(ParseError) as excinfo:
        validate_commands(["add --qm1 id 1", "frobnicate"])
    assert excinfo.value.message.startswith("Command 2 ('frobnicate')")


def test_run_batch_validates_before_running(session) -> None:
    payloads = run_batch(session, ["add --qm1 resid 1", "nope"])
    assert len(payloads) == 1
    assert payloads[0]["ok"] is False
    assert _members(session, Region.QM1) == []


def test_run_batch_stops_at_first_failure(session) -> None:
    payloads = run_batch(
        session, ["add --qm1 resid 1", "measure id 1", "add --qm2 resid 2"]
    )
    assert [payload["ok"] for payload in payloads] == [True, False]
    assert _members(session, Region.QM1) == [1, 2, 3, 4, 5]
    assert _members(session, Region.QM2) == []


def test_empty_selection_file_never_clears_region(session, tmp_path) -> None:
    session.execute("add --qm1 id 1-5")
    selection = tmp_path / "selection.txt"
    selection.write_text("# nothing selected\n\n", encoding="utf-8")
    payload = session.execute(f"remove --qm1 --file {selection}")
    assert payload["ok"] is False
    assert payload["error"]["kind"] == "parse_error"
    assert _members(session, Region.QM1) == [1, 2, 3, 4, 5]
    assert len(session.editor.history) == 1
