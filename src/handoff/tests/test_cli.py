import io
import sys
import uuid
from pathlib import Path

import pytest
from loguru import logger

from handoff.main import Args, main
from handoff.shared.types.common import TransportKind
from handoff.shared.types.settings import HandoffSettings


@pytest.fixture(autouse=True)
def isolated(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("HANDOFF_FIFO_PATH", raising=False)
    monkeypatch.delenv("HANDOFF_SHM_NAME", raising=False)
    yield
    # main() installs its own sinks
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def no_config(tmp_path: Path) -> list[str]:
    return ["--config", str(tmp_path / "missing.toml"), "--log-file", str(tmp_path / "handoff.log")]


def test_parse_args():
    args = Args.parse(["fifo", "--fifo-mode", "600", "-vv", "--values", "1", "-2"])

    assert args.transport is TransportKind.FIFO
    assert args.fifo_mode == 0o600
    assert args.verbosity == 2
    assert args.values == (1, -2)


def test_parse_defaults():
    args = Args.parse([])

    assert args.transport is None
    assert args.verbosity == 0
    assert args.values is None
    assert Args.parse(["-q"]).verbosity == -1


def test_parse_rejects_bad_arguments():
    with pytest.raises(SystemExit):
        Args.parse(["carrier-pigeon"])
    with pytest.raises(SystemExit):
        Args.parse(["fifo", "--fifo-mode", "9"])


def test_apply_overrides(tmp_path: Path):
    args = Args.parse(
        [
            "shm",
            "--shm-name", "/override",
            "--buffer-bytes", "64",
            "--fifo-path", str(tmp_path / "p"),
            "--join-timeout", "1.5",
        ]
    )
    settings = args.apply(HandoffSettings())

    assert settings.transport.kind is TransportKind.SHM
    assert settings.transport.buffer_bytes == 64
    assert settings.shm.name == "/override"
    assert settings.fifo.path == tmp_path / "p"
    assert settings.session.join_timeout == 1.5


def test_pipe_with_values(capsys: pytest.CaptureFixture[str], no_config: list[str]):
    assert main(["pipe", "--values", "10", "20", "30", *no_config]) == 0
    assert capsys.readouterr().out == "10 20 30\n"


def test_fifo_with_values(tmp_path: Path, capsys: pytest.CaptureFixture[str], no_config: list[str]):
    fifo = tmp_path / "cli.fifo"
    assert main(["fifo", "--fifo-path", str(fifo), "--values", "7", *no_config]) == 0
    assert capsys.readouterr().out == "7\n"
    assert not fifo.exists()


def test_shm_with_values(capsys: pytest.CaptureFixture[str], no_config: list[str]):
    name = f"/handoff-cli-{uuid.uuid4().hex[:8]}"
    assert main(["shm", "--shm-name", name, "--values", "42", *no_config]) == 0
    assert capsys.readouterr().out == "42\n"


def test_prompts_on_stdin(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], no_config: list[str]
):
    monkeypatch.setattr(sys, "stdin", io.StringIO("3\n1 2 3\n"))

    assert main(["pipe", *no_config]) == 0
    assert capsys.readouterr().out == "Enter number of elements: Enter 3 numbers: 1 2 3\n"


def test_rejected_input(capsys: pytest.CaptureFixture[str], no_config: list[str]):
    assert main(["pipe", "--values", *map(str, range(257)), *no_config]) == 1
    assert main(["pipe", "--values", "2147483648", *no_config]) == 1
    assert capsys.readouterr().out == ""


def test_invalid_settings(no_config: list[str]):
    assert main(["pipe", "--buffer-bytes", "4", "--values", "1", *no_config]) == 2


def test_transport_from_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    config = tmp_path / "config.toml"
    config.write_text(f'[transport]\nkind = "fifo"\n\n[fifo]\npath = "{tmp_path / "conf.fifo"}"\n')

    assert main(["--config", str(config), "--log-file", str(tmp_path / "handoff.log"), "--values", "5", "6"]) == 0
    assert capsys.readouterr().out == "5 6\n"


def test_log_file(tmp_path: Path, no_config: list[str]):
    log_file = tmp_path / "handoff.log"
    assert main(["pipe", "-q", "--values", "1", *no_config]) == 0

    log = log_file.read_text()
    assert "Session completed with 1 elements" in log
