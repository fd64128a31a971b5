"""Tests for the login launcher."""

from __future__ import annotations

import shutil
import subprocess

import pytest

from ssh_book import ssh
from ssh_book.errors import LaunchError, SshBookError
from ssh_book.models import Server
from ssh_book.ssh import build_login_command, build_ssh_args, terminal_command


def _server(**overrides) -> Server:
    fields = {"name": "Box", "username": "admin", "host": "example.com", "port": 2222, "group_id": "g"}
    fields.update(overrides)
    return Server(**fields)


def test_password_auth_command():
    expected = "ssh admin@example.com -p 2222 -o PreferredAuthentications=password"
    assert build_login_command(_server(), system="Linux") == expected


def test_key_auth_command():
    server = _server(auth_type="key", auth_info="/home/me/.ssh/id_ed25519")

    assert build_ssh_args(server) == ["ssh", "admin@example.com", "-p", "2222", "-i", "/home/me/.ssh/id_ed25519"]


def test_key_path_with_spaces_is_quoted():
    server = _server(auth_type="key", auth_info="/Users/me/My Keys/id")

    assert build_login_command(server, system="Darwin").endswith("-i '/Users/me/My Keys/id'")


def test_key_path_with_spaces_quoted_for_cmd():
    server = _server(auth_type="key", auth_info=r"C:\Users\me\My Keys\id")

    command = build_login_command(server, system="Windows")

    assert command.endswith(r'-i "C:\Users\me\My Keys\id"')
    assert "'" not in command


def test_launch_error_shares_base():
    assert issubclass(LaunchError, SshBookError)


def test_unknown_auth_type_rejected():
    # model_construct skips validation, as a stale record might
    server = Server.model_construct(**_server().model_dump(exclude={"auth_type"}), auth_type="agent")

    with pytest.raises(LaunchError, match="Invalid authentication type"):
        build_ssh_args(server)


def test_terminal_command_macos():
    argv = terminal_command('ssh a@b -i "k"', system="Darwin")

    assert argv[:2] == ["osascript", "-e"]
    assert argv[2] == 'tell application "Terminal" to do script "ssh a@b -i \\"k\\""'


def test_terminal_command_windows():
    assert terminal_command("ssh a@b", system="Windows")[-1] == "ssh a@b"


def test_terminal_command_linux(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(shutil, "which", lambda name: "/usr/bin/xterm" if name == "xterm" else None)

    assert terminal_command("ssh a@b", system="Linux") == ["xterm", "-e", "sh", "-c", "ssh a@b"]


def test_terminal_command_no_terminal(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(shutil, "which", lambda name: None)

    with pytest.raises(LaunchError):
        terminal_command("ssh a@b", system="Linux")


def test_open_in_terminal_spawns(monkeypatch: pytest.MonkeyPatch):
    spawned: list[list[str]] = []
    monkeypatch.setattr(ssh, "terminal_command", lambda command, system=None: ["term", command])
    monkeypatch.setattr(subprocess, "Popen", lambda argv: spawned.append(argv))

    ssh.open_in_terminal(_server())

    assert spawned == [["term", "ssh admin@example.com -p 2222 -o PreferredAuthentications=password"]]


def test_open_in_terminal_spawn_failure(monkeypatch: pytest.MonkeyPatch):
    def boom(argv):
        raise FileNotFoundError("osascript")

    monkeypatch.setattr(ssh, "terminal_command", lambda command, system=None: ["term", command])
    monkeypatch.setattr(subprocess, "Popen", boom)

    with pytest.raises(LaunchError, match="Failed to open terminal"):
        ssh.open_in_terminal(_server())


def test_connect_without_client(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(ssh, "has_ssh", lambda: False)

    assert ssh.connect(_server()) == 127


def test_connect_runs_ssh(monkeypatch: pytest.MonkeyPatch):
    calls: list[list[str]] = []
    monkeypatch.setattr(ssh, "has_ssh", lambda: True)
    monkeypatch.setattr(subprocess, "call", lambda cmd: calls.append(cmd) or 0)

    assert ssh.connect(_server(auth_type="key", auth_info="k")) == 0
    assert calls == [["ssh", "admin@example.com", "-p", "2222", "-i", "k"]]


def test_open_in_terminal_windows_quoting(monkeypatch: pytest.MonkeyPatch):
    spawned: list[list[str]] = []
    monkeypatch.setattr(ssh.platform, "system", lambda: "Windows")
    monkeypatch.setattr(subprocess, "Popen", lambda argv: spawned.append(argv))

    ssh.open_in_terminal(_server(auth_type="key", auth_info=r"C:\My Keys\id"))

    assert spawned[0][:6] == ["cmd", "/c", "start", "", "cmd", "/k"]
    assert spawned[0][-1] == r'ssh admin@example.com -p 2222 -i "C:\My Keys\id"'
