"""Tests for the command-line runner."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import machine
import pytest


@pytest.fixture(autouse=True)
def _close_log_files() -> Iterator[None]:
    root = logging.getLogger()
    level = root.level
    yield
    for h in list(root.handlers):
        if isinstance(h, logging.FileHandler):
            h.close()
            root.removeHandler(h)
    root.setLevel(level)


def _program(tmp_path: Path, text: str) -> str:
    p = tmp_path / "prog.txt"
    p.write_text(text + "\n", encoding="utf-8")
    return str(p)


def _run(tmp_path: Path, *args: str) -> int:
    return machine.main([*args, "--logfile", str(tmp_path / "machine.log")])


def test_run_mode(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = _run(tmp_path, _program(tmp_path, "3,0,4,0,99"), "--input", "13")
    assert code == 0
    assert capsys.readouterr().out.splitlines() == ["13", "STEPS: 3"]


def test_run_mode_without_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, _program(tmp_path, "1,0,0,0,99")) == 0
    assert capsys.readouterr().out.splitlines()[0] == "none"


def test_stream_mode(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, _program(tmp_path, "104,1,104,2,99"), "--mode", "stream") == 0
    assert capsys.readouterr().out.splitlines() == ["1", "2", "STEPS: 3"]


def test_noun_verb_and_search(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    prog = _program(tmp_path, "1102,0,0,0,99")
    assert _run(tmp_path, prog, "--mode", "noun-verb") == 0
    assert capsys.readouterr().out.strip() == "24"
    assert _run(tmp_path, prog, "--mode", "search", "--target", "12") == 0
    assert capsys.readouterr().out.strip() == "112"


def test_search_limit_from_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("search_limit: 4\nlenient_log: true\n", encoding="utf-8")
    prog = _program(tmp_path, "1102,0,0,0,99")
    assert _run(tmp_path, prog, "--mode", "search", "--target", "12", "--config", str(cfg)) == 1
    assert "below 4 produces 12" in capsys.readouterr().out


def test_search_with_only_search_limit_configured(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("search_limit: 10\n", encoding="utf-8")
    prog = _program(tmp_path, "1102,0,0,0,99")
    assert _run(tmp_path, prog, "--mode", "search", "--target", "12", "--config", str(cfg)) == 0
    assert capsys.readouterr().out.strip() == "206"


def test_noun_verb_above_search_range(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    prog = _program(tmp_path, "1102,0,0,0,99")
    assert _run(tmp_path, prog, "--mode", "noun-verb", "--noun", "150", "--verb", "2") == 0
    assert capsys.readouterr().out.strip() == "300"


def test_diagnostic_mode(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    prog = _program(tmp_path, "3,0,104,0,4,0,99")
    assert _run(tmp_path, prog, "--mode", "diagnostic", "--input", "5") == 0
    assert capsys.readouterr().out.strip() == "5"


def test_debug_log_written(tmp_path: Path) -> None:
    assert _run(tmp_path, _program(tmp_path, "1101,100,-1,4,0"), "--debug") == 0
    for h in logging.getLogger().handlers:
        h.flush()
    log = (tmp_path / "machine.log").read_text(encoding="utf-8")
    assert "INSTR: ADD #100 #-1 [4]" in log


def test_bad_program(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, _program(tmp_path, "1,a,3")) == 2
    assert "Bad program" in capsys.readouterr().out


def test_missing_program(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, str(tmp_path / "none.txt")) == 2
    assert "not found" in capsys.readouterr().out


def test_bad_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("search_limit: 0\n", encoding="utf-8")
    prog = _program(tmp_path, "99")
    assert _run(tmp_path, prog, "--config", str(cfg)) == 2
    assert "Bad config" in capsys.readouterr().out


def test_machine_fault(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, _program(tmp_path, "3,0,99")) == 1
    assert "Machine fault: missing input" in capsys.readouterr().out
