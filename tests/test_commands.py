import pytest

from qmregions.commands import (
    CommandKind,
    Distance,
    parse_command,
    read_command_file,
    split_commands,
)
from qmregions.errors import InvalidCombinationError, ParseError, StructureError
from qmregions.model.state import Partial, Region, Target


def test_add_with_intermixed_options() -> None:
    command = parse_command("A resid 5-9 --qm2 -b and name C1'")
    assert command.kind is CommandKind.ADD
    assert command.region is Region.QM2
    assert command.partial is Partial.BACKBONE
    assert command.selection == "resid 5-9 and name C1'"


def test_remove_defaults_to_blanket() -> None:
    command = parse_command("rem")
    assert command.kind is CommandKind.REMOVE
    assert (command.region, command.selection, command.selection_file) == (None, None, None)


@pytest.mark.parametrize("word", ["query", "que", "Q", "q"])
def test_query_aliases(word) -> None:
    command = parse_command(f"{word} resn HOH")
    assert command.kind is CommandKind.QUERY
    assert command.selection == "resn HOH"


def test_analyze_options() -> None:
    command = parse_command("ana --qm1 --residues --contacts 3.5")
    assert (command.region, command.target) == (Region.QM1, Target.RESIDUES)
    assert command.distance is Distance.CONTACTS
    assert command.cutoff == 3.5
    assert parse_command("y -n").cutoff == 4.0
    assert parse_command("y -c").distance is Distance.CLASHES


def test_write_and_export_paths() -> None:
    command = parse_command("w -a -t -f active.txt")
    assert (command.region, command.target, command.path) == (
        Region.ACTIVE,
        Target.ATOMS,
        "active.txt",
    )
    assert parse_command("write -w").overwrite
    assert parse_command("x --file regions.txt").path == "regions.txt"
    assert parse_command("import regions.txt").path == "regions.txt"
    assert parse_command("undo").kind is CommandKind.UNDO


@pytest.mark.parametrize(
    "line",
    ["", "frobnicate", "query", "undo now", "analyze --contacts far", "write -f a.pdb -w"],
)
def test_parse_errors(line) -> None:
    with pytest.raises(ParseError):
        parse_command(line)


@pytest.mark.parametrize(
    "line",
    ["add --qm1 resid 1 --file sel.txt", "write --qm1", "analyze --atoms", "write -w --qm1 -t"],
)
def test_invalid_combinations(line) -> None:
    with pytest.raises(InvalidCombinationError):
        parse_command(line)


def test_split_and_read_commands(tmp_path) -> None:
    assert split_commands(" add --qm1 id 1 /  / undo ") == ["add --qm1 id 1", "undo"]
    path = tmp_path / "commands.txt"
    path.write_text("# header\n\n  add --qm1 id 1  \nundo\n", encoding="utf-8")
    assert read_command_file(str(path)) == ["add --qm1 id 1", "undo"]
    with pytest.raises(StructureError):
        read_command_file(str(tmp_path / "missing.txt"))
