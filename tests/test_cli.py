import pytest

from qmregions import config
from qmregions.app import HELP_TEXT, _parse_args, main, run_interactive
from qmregions.model.session import Session
from qmregions.model.state import Region
from qmregions.services.report import render_payload


def test_parse_args_single_shot_commands() -> None:
    args = _parse_args(["qmregions", "example.pdb", "add", "--qm1", "resid", "1", "/", "undo"])
    assert args.pdbfile == "example.pdb"
    assert args.commands == ["add", "--qm1", "resid", "1", "/", "undo"]
    assert not args.interactive
    assert args.batch_file is None
    assert args.log_level == config.DEFAULT_LOG_LEVEL
    assert args.workers == config.DEFAULT_WORKERS


def test_parse_args_modes() -> None:
    assert _parse_args(["qmregions", "-i", "example.pdb"]).interactive
    args = _parse_args(["qmregions", "--workers", "4", "-f", "cmds.txt", "example.pdb"])
    assert args.batch_file == "cmds.txt"
    assert args.workers == 4


@pytest.mark.parametrize(
    "argv",
    [
        ["qmregions", "example.pdb"],
        ["qmregions", "-i", "example.pdb", "undo"],
        ["qmregions", "-i", "-f", "cmds.txt", "example.pdb"],
    ],
)
def test_parse_args_rejects_bad_modes(argv) -> None:
    with pytest.raises(SystemExit):
        _parse_args(argv)


def test_main_runs_single_shot_commands(pdb_path, capsys) -> None:
    argv = ["qmregions", str(pdb_path), "add", "--qm1", "resid", "1", "/", "write", "--overwrite"]
    assert main(argv) == 0
    out = capsys.readouterr().out
    assert "Added 5 atoms to QM1" in out
    assert f"Wrote {pdb_path}" in out
    assert list(Session.load(str(pdb_path)).structure.atoms_in(Region.QM1)) == [1, 2, 3, 4, 5]


def test_main_batch_file_stops_on_error(pdb_path, tmp_path, capsys) -> None:
    commands = tmp_path / "commands.txt"
    commands.write_text(
        "# setup\nadd --active resid 4\nmeasure id 1\nwrite --overwrite\n", encoding="utf-8"
    )
    assert main(["qmregions", "-f", str(commands), str(pdb_path)]) == 1
    out = capsys.readouterr().out
    assert "Added 3 atoms to Active" in out
    assert "Error (geometry_error)" in out
    assert "Wrote" not in out


def test_main_reports_missing_structure(tmp_path, capsys) -> None:
    assert main(["qmregions", str(tmp_path / "missing.pdb"), "undo"]) == 1
    assert "Error (io_error)" in capsys.readouterr().err


def test_interactive_prompt(session) -> None:
    lines = iter(["", "help", "add --qm1 resid 1", "query id 1", "bogus", "exit", "never"])
    prompts = []
    outputs = []

    def read(prompt):
        prompts.append(prompt)
        return next(lines)

    assert run_interactive(session, read=read, output=outputs.append) == 0
    assert prompts == [config.PROMPT] * 6
    assert outputs[1] == HELP_TEXT
    assert outputs[2] == "Added 5 atoms to QM1"
    assert outputs[3].startswith("1 atoms selected")
    assert outputs[4] == "Error (parse_error): Unknown command 'bogus'"
    assert next(lines) == "never"


def test_interactive_prompt_ends_on_eof(session) -> None:
    def read(prompt):
        raise EOFError

    outputs = []
    assert run_interactive(session, read=read, output=outputs.append) == 0
    assert outputs[-1] == ""


def test_render_payload_export_commands() -> None:
    payload = {"ok": True, "commands": ["add --qm1 id 1-3", "add --active id 9"]}
    assert render_payload(payload) == "add --qm1 id 1-3\nadd --active id 9"
    written = dict(payload, path="regions.txt", message="Exported 2 commands to regions.txt")
    assert render_payload(written) == "Exported 2 commands to regions.txt"


def test_interactive_prompt_keeps_file_paths_whole(session, tmp_path) -> None:
    saved = tmp_path / "state" / "regions.txt"
    saved.parent.mkdir()
    lines = iter(["add --qm2 resid 2", f"export --file {saved}", "quit"])
    outputs = []

    run_interactive(session, read=lambda prompt: next(lines), output=outputs.append)
    assert outputs[-1] == f"Exported 1 commands to {saved}"
    assert saved.read_text(encoding="utf-8") == "add --qm2 id 6-12\n"
