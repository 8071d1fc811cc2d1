"""Building and running external commands: git, makepkg, pacman and sudo."""

from __future__ import annotations

import os
import pwd
import shlex
import shutil
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Protocol

from . import text
from .parser import Arguments, TargetMode

SUDO_LOOP_DURATION = 241
_LOCK_POLL_SECONDS = 3
_PROXY_VARIABLES = ("http_proxy", "https_proxy", "ftp_proxy")


@dataclass
class Command:
    """A command line ready to run, with its working directory and identity."""

    args: list[str]
    cwd: str | None = None
    env: dict[str, str] | None = None
    user: int | None = None
    group: int | None = None
    timeout: float | None = None

    def __str__(self) -> str:
        return shlex.join(self.args)


class _Runner(Protocol):
    def show(self, cmd: Command) -> None: ...

    def capture(self, cmd: Command) -> tuple[str, str]: ...


class OSRunner:
    """Runs commands on the local system."""

    def show(self, cmd: Command) -> None:
        """Run a command attached to the terminal; raise if it fails."""
        subprocess.run(
            cmd.args,
            cwd=cmd.cwd,
            env=cmd.env,
            user=cmd.user,
            group=cmd.group,
            timeout=cmd.timeout,
            check=True,
        )

    def capture(self, cmd: Command) -> tuple[str, str]:
        """Run a command and return its trimmed standard output and error.

        A non-zero exit raises CalledProcessError carrying both streams.
        """
        result = subprocess.run(
            cmd.args,
            cwd=cmd.cwd,
            env=cmd.env,
            user=cmd.user,
            group=cmd.group,
            timeout=cmd.timeout,
            capture_output=True,
            text=True,
        )
        stdout = result.stdout.strip()
        if result.returncode != 0:
            raise subprocess.CalledProcessError(
                result.returncode, cmd.args, output=stdout, stderr=result.stderr.strip()
            )
        return stdout, ""


@dataclass
class CmdBuilder:
    """Builds the git, makepkg and pacman commands with the configured flags."""

    git_bin: str = "git"
    git_flags: list[str] = field(default_factory=list)
    makepkg_flags: list[str] = field(default_factory=list)
    makepkg_conf_path: str = ""
    makepkg_bin: str = "makepkg"
    sudo_bin: str = "sudo"
    sudo_flags: list[str] = field(default_factory=list)
    sudo_loop_enabled: bool = False
    pacman_bin: str = "pacman"
    pacman_config_path: str = ""
    pacman_db_path: str = ""
    runner: _Runner = field(default_factory=OSRunner)

    def build_git_cmd(self, directory: str, *args: str) -> Command:
        cmd_args = [self.git_bin, *self.git_flags]
        if directory:
            cmd_args += ["-C", directory]
        cmd_args += args
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        return self._de_elevate(Command(cmd_args, env=env))

    def add_makepkg_flag(self, flag: str) -> None:
        self.makepkg_flags.append(flag)

    def build_makepkg_cmd(self, directory: str, *args: str) -> Command:
        cmd_args = [self.makepkg_bin, *self.makepkg_flags]
        if self.makepkg_conf_path:
            cmd_args += ["--config", self.makepkg_conf_path]
        cmd_args += args
        return self._de_elevate(Command(cmd_args, cwd=directory or None))

    def set_pacman_db_path(self, db_path: str) -> None:
        self.pacman_db_path = db_path

    def _de_elevate(self, cmd: Command) -> Command:
        """When running as root, drop back to the invoking user or a dynamic one."""
        if os.geteuid() != 0:
            return cmd

        caller = os.environ.get("SUDO_USER") or os.environ.get("DOAS_USER") or ""
        try:
            entry = pwd.getpwnam(caller)
        except KeyError:
            entry = None

        if entry is not None:
            cmd.user = entry.pw_uid
            cmd.group = entry.pw_gid
            return cmd

        systemd_args = [
            "--service-type=oneshot",
            "--pipe", "--wait", "--pty", "--quiet",
            "-p", "DynamicUser=yes",
            "-p", "CacheDirectory=yay",
            "-E", "HOME=/tmp",
        ]
        if cmd.cwd:
            systemd_args += ["-p", f"WorkingDirectory={cmd.cwd}"]
        for name in _PROXY_VARIABLES:
            value = os.environ.get(name)
            if value:
                systemd_args += ["-E", f"{name}={value}"]

        path = shutil.which(cmd.args[0]) or cmd.args[0]
        return Command(
            ["systemd-run", *systemd_args, path, *cmd.args[1:]],
            cwd=cmd.cwd,
            timeout=cmd.timeout,
        )

    def _privilege_elevator_command(self, args: list[str]) -> Command:
        if self.sudo_bin == "su":
            return Command([self.sudo_bin, "-c", " ".join(args)])
        return Command([self.sudo_bin, *self.sudo_flags, *args])

    def build_pacman_cmd(
        self, args: Arguments, mode: TargetMode, no_confirm: bool
    ) -> Command:
        needs_root = args.need_root(mode)
        cmd_args = [self.pacman_bin, *args.format_globals(), *args.format_args()]
        if no_confirm:
            cmd_args.append("--noconfirm")
        cmd_args += ["--config", self.pacman_config_path, "--", *args.targets]

        if needs_root:
            wait_lock(self.pacman_db_path)
            if os.geteuid() != 0:
                return self._privilege_elevator_command(cmd_args)

        return Command(cmd_args)

    def sudo_loop(self) -> None:
        """Refresh the sudo timestamp now and keep refreshing it in the background."""
        self._update_sudo()
        threading.Thread(target=self._sudo_loop_background, daemon=True).start()

    def _sudo_loop_background(self) -> None:
        while True:
            self._update_sudo()
            time.sleep(SUDO_LOOP_DURATION)

    def _update_sudo(self) -> None:
        while True:
            try:
                self.show(Command([self.sudo_bin, "-v"]))
            except (subprocess.SubprocessError, OSError) as exc:
                print(exc, file=sys.stderr)
            else:
                return

    def show(self, cmd: Command) -> None:
        self.runner.show(cmd)

    def capture(self, cmd: Command) -> tuple[str, str]:
        return self.runner.capture(cmd)


def wait_lock(db_path: str) -> None:
    """Block while pacman's database lock file exists."""
    lock_path = os.path.join(db_path, "db.lck")
    if not os.path.exists(lock_path):
        return

    text.warn(f"{lock_path} is present.")
    text.warn("There may be another Pacman instance running. Waiting...", newline=False)

    while True:
        time.sleep(_LOCK_POLL_SECONDS)
        if not os.path.exists(lock_path):
            sys.stdout.write("\n")
            return