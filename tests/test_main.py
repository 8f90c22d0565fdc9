#!/usr/bin/env python3
"""Tests for the process entry points."""
import os

import pytest

from pushagent import main as agent_main
from pushagent.errors import MalformedIdentity
from pushagent.labels import ProcessIdentity
from pushagent.scheduler import PushScheduler


@pytest.fixture
def started(monkeypatch):
    """Capture scheduler starts instead of running threads."""
    calls = []

    def fake_start(self, on_exit):
        calls.append((self, on_exit))

    monkeypatch.setattr(PushScheduler, "start", fake_start)
    return calls


def test_premain_starts_scheduler(started):
    scheduler = agent_main.premain("pushgateway:9091:config.yaml:30:extraTrueLabels=staging")

    assert len(started) == 1
    assert started[0][0] is scheduler
    assert started[0][1] is agent_main.terminate_process
    assert scheduler.config.address() == "pushgateway:9091"
    assert scheduler.config.interval == 30

    labels = scheduler.labels.as_dict()
    assert labels["jvm_pid"] == str(os.getpid())
    assert labels["staging"] == "true"
    assert scheduler.job_name == f"{labels['jvm_host']}_{os.getpid()}"


def test_premain_malformed_argument(started, capsys):
    with pytest.raises(SystemExit) as excinfo:
        agent_main.premain("127.0.0.1:localhost:8080:config.yaml:60")

    assert excinfo.value.code == 1
    assert started == []
    err = capsys.readouterr().err
    assert "Usage:" in err
    assert "Malformed arguments - 127.0.0.1:localhost:8080:config.yaml:60" in err


def test_premain_missing_argument(started, capsys):
    with pytest.raises(SystemExit) as excinfo:
        agent_main.premain(None)

    assert excinfo.value.code == 1
    assert "Usage:" in capsys.readouterr().err


def test_premain_malformed_identity(started, monkeypatch, capsys):
    def broken_identity(cls):
        raise MalformedIdentity("no-separator")

    monkeypatch.setattr(ProcessIdentity, "current", classmethod(broken_identity))

    with pytest.raises(SystemExit) as excinfo:
        agent_main.premain("9091:config.yaml:30")

    assert excinfo.value.code == 1
    assert started == []
    assert "no-separator" in capsys.readouterr().err


def test_terminate_process(monkeypatch, capsys):
    codes = []
    monkeypatch.setattr(agent_main.os, "_exit", codes.append)

    agent_main.terminate_process(1, "sleep interrupted")

    assert codes == [1]
    assert "sleep interrupted" in capsys.readouterr().err


def test_main_exits_with_scheduler_code(monkeypatch, tmp_path):
    descriptor = tmp_path / "agent.yaml"
    descriptor.write_text("")

    def fake_start(self, on_exit):
        self.exit_code = 1

        class Finished:
            def is_alive(self):
                return False

        self.thread = Finished()
        return self.thread

    monkeypatch.setattr(PushScheduler, "start", fake_start)
    monkeypatch.setattr(agent_main.signal, "signal", lambda signum, handler: None)
    monkeypatch.setattr(agent_main.sys, "argv", ["pushagent", f"9091:{descriptor}:15"])

    with pytest.raises(SystemExit) as excinfo:
        agent_main.main()

    assert excinfo.value.code == 1


def test_main_reads_argument_from_environment(monkeypatch, capsys):
    monkeypatch.setenv(agent_main.ARGS_ENV, "not-an-agent-argument")
    monkeypatch.setattr(agent_main.sys, "argv", ["pushagent"])

    with pytest.raises(SystemExit) as excinfo:
        agent_main.main()

    assert excinfo.value.code == 1
    assert "Malformed arguments - not-an-agent-argument" in capsys.readouterr().err
