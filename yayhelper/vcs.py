"""Tracking of the latest commits of development (VCS) packages."""

from __future__ import annotations

import json
import os
import subprocess
import sys
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Iterable

from . import text
from .exe import CmdBuilder

_GIT_TIMEOUT_SECONDS = 5


@dataclass
class OriginInfo:
    """The protocols, branch and last known commit of one repository URL."""

    protocols: list[str] = field(default_factory=list)
    branch: str = ""
    sha: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"protocols": list(self.protocols), "branch": self.branch, "sha": self.sha}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OriginInfo:
        return cls(
            protocols=list(data.get("protocols") or []),
            branch=data.get("branch", ""),
            sha=data.get("sha", ""),
        )


def parse_source(source: str) -> tuple[str, str, list[str]]:
    """Return the git URL, branch and protocols of a PKGBUILD source.

    Sources that are not git, or that pin a tag or commit, give ("", "", []).
    """
    source = source.split("::")[-1]
    parts = source.split("://", 1)
    if len(parts) != 2:
        return "", "", []

    protocols = parts[0].split("+", 1)
    is_git = "git" in protocols
    protocols = protocols[-1:]
    if not is_git:
        return "", "", []

    url = branch = ""
    location = parts[1].split("#", 1)
    if len(location) == 2:
        fragment = location[1].split("=", 1)
        if fragment[0] != "branch":
            return "", "", []
        if len(fragment) == 2:
            url, branch = location[0], fragment[1]
    else:
        url, branch = location[0], "HEAD"

    return url.split("?")[0], branch.split("?")[0], protocols


class InfoStore:
    """Last seen commits of each package's origins, kept in a JSON file."""

    def __init__(
        self,
        file_path: str,
        cmd_builder: CmdBuilder,
        origins_by_package: dict[str, dict[str, OriginInfo]] | None = None,
    ) -> None:
        self.file_path = file_path
        self.cmd_builder = cmd_builder
        self.origins_by_package = {} if origins_by_package is None else origins_by_package
        self._lock = threading.Lock()

    def _get_commit(self, url: str, branch: str, protocols: list[str]) -> str:
        if not protocols:
            return ""
        protocol = protocols[-1]
        cmd = self.cmd_builder.build_git_cmd("", "ls-remote", f"{protocol}://{url}", branch)
        cmd.timeout = _GIT_TIMEOUT_SECONDS
        try:
            stdout, _ = self.cmd_builder.capture(cmd)
        except subprocess.CalledProcessError as exc:
            if exc.returncode == 128:
                text.warn(f"devel check for package failed: '{cmd}' encountered an error")
            else:
                text.warn(exc)
            return ""
        except (subprocess.SubprocessError, OSError) as exc:
            text.warn(exc)
            return ""

        fields = stdout.split()
        if len(fields) < 2:
            return ""
        return fields[0]

    def update(self, pkg_name: str, sources: Iterable[str]) -> None:
        """Record the current commit of every git source of a package."""
        info: dict[str, OriginInfo] = {}

        def check_source(source: str) -> None:
            url, branch, protocols = parse_source(source)
            if not url or not branch:
                return
            commit = self._get_commit(url, branch, protocols)
            if not commit:
                return
            with self._lock:
                info[url] = OriginInfo(protocols, branch, commit)
                self.origins_by_package[pkg_name] = info
                text.warn(f"Found git repo: {text.cyan(url)}")
                try:
                    self.save()
                except OSError as exc:
                    print(exc, file=sys.stderr)

        with ThreadPoolExecutor() as pool:
            list(pool.map(check_source, sources))

    def needs_update(self, infos: dict[str, OriginInfo]) -> bool:
        """True as soon as any origin reports a commit other than the stored one."""
        if not infos:
            return False
        pool = ThreadPoolExecutor(max_workers=len(infos))
        try:
            futures = {
                pool.submit(self._get_commit, url, info.branch, info.protocols): info
                for url, info in infos.items()
            }
            for future in as_completed(futures):
                commit = future.result()
                if commit and commit != futures[future].sha:
                    return True
            return False
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def save(self) -> None:
        """Write the store to its file."""
        data = {
            pkg: {url: origin.to_dict() for url, origin in sorted(origins.items())}
            for pkg, origins in sorted(self.origins_by_package.items())
        }
        with open(self.file_path, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(data, indent="\t"))
            handle.flush()
            os.fsync(handle.fileno())

    def remove_package(self, pkgs: Iterable[str]) -> None:
        """Forget the given packages, saving the store if anything changed."""
        updated = False
        for name in pkgs:
            if self.origins_by_package.pop(name, None) is not None:
                updated = True
        if updated:
            try:
                self.save()
            except OSError as exc:
                print(exc, file=sys.stderr)

    def load(self) -> None:
        """Read the store's file into memory; a missing file is not an error."""
        try:
            with open(self.file_path, encoding="utf-8") as handle:
                raw = handle.read()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise OSError(f"failed to open vcs file '{self.file_path}': {exc}") from exc

        try:
            data = json.loads(raw)
            if data is None:
                return
            for pkg, origins in data.items():
                self.origins_by_package[pkg] = {
                    url: OriginInfo.from_dict(origin) for url, origin in origins.items()
                }
        except (ValueError, TypeError, AttributeError) as exc:
            raise ValueError(f"failed to read vcs '{self.file_path}': {exc}") from exc