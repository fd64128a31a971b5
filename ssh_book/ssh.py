from __future__ import annotations

import logging
import platform
import shlex
import shutil
import subprocess

from rich.console import Console

from .errors import LaunchError
from .models import Server

console = Console()
logger = logging.getLogger(__name__)

# Terminal emulators tried on Linux/BSD, with the flag that precedes the command.
LINUX_TERMINALS: list[tuple[str, list[str]]] = [
    ("x-terminal-emulator", ["-e"]),
    ("gnome-terminal", ["--"]),
    ("konsole", ["-e"]),
    ("xterm", ["-e"]),
]


def has_ssh() -> bool:
    """Check if SSH client is available."""
    return shutil.which("ssh") is not None


def build_ssh_args(server: Server) -> list[str]:
    """Return the ssh argv for a server."""
    args = ["ssh", f"{server.username}@{server.host}", "-p", str(server.port)]
    if server.auth_type == "password":
        # credentials are typed into the ssh prompt
        args += ["-o", "PreferredAuthentications=password"]
    elif server.auth_type == "key":
        args += ["-i", server.auth_info]
    else:
        raise LaunchError("Invalid authentication type")
    return args


def build_login_command(server: Server, system: str | None = None) -> str:
    """Return the ssh command line quoted for the platform shell."""
    args = build_ssh_args(server)
    if (system or platform.system()) == "Windows":
        return subprocess.list2cmdline(args)
    return shlex.join(args)


def terminal_command(command: str, system: str | None = None) -> list[str]:
    """Return argv that opens a new terminal window running command."""
    system = system or platform.system()
    if system == "Darwin":
        escaped = command.replace("\\", "\\\\").replace('"', '\\"')
        return ["osascript", "-e", f'tell application "Terminal" to do script "{escaped}"']
    if system == "Windows":
        return ["cmd", "/c", "start", "", "cmd", "/k", command]
    for name, flag in LINUX_TERMINALS:
        if shutil.which(name):
            return [name, *flag, "sh", "-c", command]
    raise LaunchError("No terminal emulator found")


def open_in_terminal(server: Server) -> None:
    """Spawn a terminal window with an ssh session to server."""
    system = platform.system()
    command = build_login_command(server, system)
    argv = terminal_command(command, system)
    logger.info("Launching: %s", command)
    try:
        subprocess.Popen(argv)  # noqa: S603
    except OSError as e:
        raise LaunchError(f"Failed to open terminal: {e}") from e


def connect(server: Server) -> int:
    """Connect to SSH server in the current terminal. Returns exit code."""
    if not has_ssh():
        console.print("[red]SSH client not found.[/red]")
        system = platform.system()
        if system == "Windows":
            console.print("Install OpenSSH Client: [cyan]winget install --id Microsoft.OpenSSH.Client -e[/cyan]")
        elif system == "Darwin":
            console.print("Try: [cyan]brew install openssh[/cyan]")
        else:
            console.print("Install the [cyan]openssh-client[/cyan] package with your package manager.")
        return 127

    try:
        cmd = build_ssh_args(server)
    except LaunchError as e:
        console.print(f"[red]{e}[/red]")
        return 1

    console.print(f"[cyan]SSH: {shlex.join(cmd)}[/cyan]")
    try:
        return subprocess.call(cmd)  # noqa: S603
    except KeyboardInterrupt:
        return 130
    except OSError as e:
        console.print(f"[red]SSH execution error: {e}[/red]")
        return 1
