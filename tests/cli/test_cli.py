"""Command-line interface tests."""

import json
import os

import pytest

from wpcheck.cli import main


GOOD = """
def inc(x: int) -> int:
    pre(x >= 0)
    post(result > x)
    return x + 1
"""

BAD = """
def dec(x: int) -> int:
    pre(x >= 0)
    post(result > x)
    return x - 1
"""


def run(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


@pytest.fixture
def good_file(tmp_path):
    path = tmp_path / "good.py"
    path.write_text(GOOD)
    return str(path)


class TestVerifyCommand:

    def test_verified_exits_zero(self, good_file, capsys):
        assert run(["verify", good_file, "--workers", "1"]) == 0
        out = capsys.readouterr().out
        assert "inc" in out
        assert "1/1 functions verified" in out

    def test_falsified_exits_one(self, tmp_path, capsys):
        path = tmp_path / "bad.py"
        path.write_text(BAD)
        assert run(["verify", str(path), "--workers", "1"]) == 1
        assert "falsified" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, capsys):
        assert run(["verify", str(tmp_path / "nope.py")]) == 2
        assert "File not found" in capsys.readouterr().err

    def test_syntax_error(self, tmp_path, capsys):
        path = tmp_path / "broken.py"
        path.write_text("def f(:\n")
        assert run(["verify", str(path)]) == 2

    def test_unknown_extension(self, tmp_path):
        path = tmp_path / "prog.rs"
        path.write_text("fn main() {}\n")
        assert run(["verify", str(path)]) == 2

    def test_json_format(self, good_file, capsys):
        assert run(["verify", good_file, "--format", "json", "--workers", "1"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["ok"] is True
        assert data["functions"][0]["function"] == "inc"
        assert data["functions"][0]["verdict"] == "verified"

    def test_dot_export(self, good_file, tmp_path, capsys):
        out_dir = tmp_path / "graphs"
        assert run(["verify", good_file, "--dot", "--export-dir", str(out_dir)]) == 0
        assert os.path.isfile(out_dir / "inc" / "inc.dot")
        assert os.path.isfile(out_dir / "inc" / "basic_path_0.dot")
        assert (out_dir / "inc" / "inc.dot").read_text().startswith('digraph "inc"')

    def test_broken_config(self, good_file, tmp_path, capsys):
        config = tmp_path / "conf.yml"
        config.write_text("assert_mode: sideways\n")
        assert run(["verify", good_file, "--config", str(config)]) == 2
        assert "assert_mode" in capsys.readouterr().err

    def test_missing_config(self, good_file, tmp_path):
        assert run(["verify", good_file, "--config", str(tmp_path / "none.yml")]) == 2

    def test_config_file_discovered(self, good_file, tmp_path, capsys):
        (tmp_path / ".wpcheckrc.yml").write_text("format: json\nworkers: 1\n")
        assert run(["verify", good_file]) == 0
        assert json.loads(capsys.readouterr().out)["ok"] is True

    def test_flag_overrides_config(self, good_file, tmp_path, capsys):
        (tmp_path / ".wpcheckrc.yml").write_text("format: json\n")
        assert run(["verify", good_file, "--format", "text"]) == 0
        assert "functions verified" in capsys.readouterr().out

    def test_no_command(self, capsys):
        assert run([]) == 1
