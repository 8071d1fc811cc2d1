"""Command line arguments kept in a form that can be passed on to pacman."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable


class TargetMode(Enum):
    """Which package sources an operation may act on."""

    ANY = 0
    AUR = 1
    REPO = 2

    def at_least_aur(self) -> bool:
        return self in (TargetMode.ANY, TargetMode.AUR)

    def at_least_repo(self) -> bool:
        return self in (TargetMode.ANY, TargetMode.REPO)


class ArgumentError(ValueError):
    """Raised for invalid or conflicting command line arguments."""


_ARGS = frozenset(
    {
        "-", "--", "ask",
        "D", "database", "Q", "query", "R", "remove", "S", "sync",
        "T", "deptest", "U", "upgrade", "F", "files", "V", "version",
        "h", "help", "Y", "yay", "P", "show", "G", "getpkgbuild",
        "b", "dbpath", "r", "root", "v", "verbose",
        "arch", "cachedir", "color", "config", "debug", "gpgdir", "hookdir",
        "logfile", "noconfirm", "confirm", "disable-download-timeout", "sysroot",
        "d", "nodeps", "assume-installed", "dbonly", "noprogressbar",
        "numberupgrades", "noscriptlet", "p", "print", "print-format",
        "asdeps", "asexplicit", "ignore", "ignoregroup", "needed", "overwrite",
        "f", "force", "c", "changelog", "deps", "e", "explicit", "g", "groups",
        "i", "info", "k", "check", "l", "list", "m", "foreign", "n", "native",
        "o", "owns", "file", "q", "quiet", "s", "search", "t", "unrequired",
        "u", "upgrades", "cascade", "nosave", "recursive", "unneeded", "clean",
        "sysupgrade", "w", "downloadonly", "y", "refresh", "x", "regex",
        "machinereadable",
        # yay options
        "aururl", "save", "afterclean", "cleanafter", "noafterclean",
        "nocleanafter", "devel", "nodevel", "timeupdate", "notimeupdate",
        "topdown", "bottomup", "completioninterval", "sortby", "searchby",
        "redownload", "redownloadall", "noredownload", "rebuild", "rebuildall",
        "rebuildtree", "norebuild", "batchinstall", "nobatchinstall",
        "answerclean", "noanswerclean", "answerdiff", "noanswerdiff",
        "answeredit", "noansweredit", "answerupgrade", "noanswerupgrade",
        "gpgflags", "mflags", "gitflags", "builddir", "editor", "editorflags",
        "makepkg", "makepkgconf", "nomakepkgconf", "pacman", "git", "gpg",
        "sudo", "sudoflags", "requestsplitn", "sudoloop", "nosudoloop",
        "provides", "noprovides", "pgpfetch", "nopgpfetch", "upgrademenu",
        "noupgrademenu", "cleanmenu", "nocleanmenu", "diffmenu", "nodiffmenu",
        "editmenu", "noeditmenu", "useask", "nouseask", "combinedupgrade",
        "nocombinedupgrade", "a", "aur", "repo", "removemake", "noremovemake",
        "askremovemake", "complete", "stats", "news", "gendb", "currentconfig",
        "singlelineresults", "doublelineresults",
    }
)

_OPS = frozenset(
    {
        "V", "version", "D", "database", "F", "files", "Q", "query",
        "R", "remove", "S", "sync", "T", "deptest", "U", "upgrade",
        "Y", "yay", "P", "show", "G", "getpkgbuild",
    }
)

_GLOBALS = frozenset(
    {
        "b", "dbpath", "r", "root", "v", "verbose", "arch", "cachedir",
        "color", "config", "debug", "gpgdir", "hookdir", "logfile",
        "noconfirm", "confirm",
    }
)

_PARAMS = frozenset(
    {
        "dbpath", "b", "root", "r", "sysroot", "config", "ignore",
        "assume-installed", "overwrite", "ask", "cachedir", "hookdir",
        "logfile", "ignoregroup", "arch", "print-format", "gpgdir", "color",
        # yay params
        "aururl", "mflags", "gpgflags", "gitflags", "builddir", "editor",
        "editorflags", "makepkg", "makepkgconf", "pacman", "git", "gpg",
        "sudo", "sudoflags", "requestsplitn", "answerclean", "answerdiff",
        "answeredit", "answerupgrade", "completioninterval", "sortby",
        "searchby",
    }
)


def is_arg(arg: str) -> bool:
    """True if the option name is known."""
    return arg in _ARGS


def is_op(op: str) -> bool:
    """True if the option name is an operation such as S or query."""
    return op in _OPS


def is_global(op: str) -> bool:
    """True if the option applies globally to pacman."""
    return op in _GLOBALS


def has_param(arg: str) -> bool:
    """True if the option takes a value."""
    return arg in _PARAMS


def _format_arg(arg: str) -> str:
    return "--" + arg if len(arg) > 1 else "-" + arg


@dataclass
class Option:
    """The values given for one option, and whether it is global."""

    is_global: bool = False
    args: list[str] = field(default_factory=list)

    def add(self, *args: str) -> None:
        self.args.extend(args)

    def first(self) -> str:
        return self.args[0] if self.args else ""

    def set(self, arg: str) -> None:
        self.args = [arg]


@dataclass
class Arguments:
    """A parsed command line: one operation, its options and its targets."""

    op: str = ""
    options: dict[str, Option] = field(default_factory=dict)
    targets: list[str] = field(default_factory=list)

    def create_or_append_option(self, option: str, *args: str) -> None:
        existing = self.options.get(option)
        if existing is None:
            self.options[option] = Option(args=list(args))
        else:
            existing.add(*args)

    def copy_global(self) -> Arguments:
        """A new set of arguments holding only the global options."""
        return Arguments(
            options={k: v for k, v in self.options.items() if v.is_global}
        )

    def copy(self) -> Arguments:
        return Arguments(
            op=self.op, options=dict(self.options), targets=list(self.targets)
        )

    def del_arg(self, *args: str) -> None:
        for option in args:
            self.options.pop(option, None)

    def need_root(self, mode: TargetMode) -> bool:
        """Whether running this command needs root privileges."""
        if self.exists_arg("h", "help"):
            return False

        op = self.op
        if op in ("D", "database"):
            return not self.exists_arg("k", "check")
        if op in ("F", "files"):
            return self.exists_arg("y", "refresh")
        if op in ("Q", "query"):
            return self.exists_arg("k", "check")
        if op in ("R", "remove"):
            return not self.exists_arg("p", "print", "print-format")
        if op in ("S", "sync"):
            if self.exists_arg("y", "refresh"):
                return True
            if (
                self.exists_arg("p", "print", "print-format")
                or self.exists_arg("s", "search")
                or self.exists_arg("l", "list")
                or self.exists_arg("g", "groups")
                or self.exists_arg("i", "info")
            ):
                return False
            if self.exists_arg("c", "clean") and mode == TargetMode.AUR:
                return False
            return True
        if op in ("U", "upgrade"):
            return True
        return False

    def _add_op(self, op: str) -> None:
        if self.op:
            raise ArgumentError("only one operation may be used at a time")
        self.op = op

    def add_param(self, option: str, arg: str) -> None:
        if not is_arg(option):
            raise ArgumentError(f"invalid option '{option}'")
        if is_op(option):
            self._add_op(option)
            return
        self.create_or_append_option(option, *arg.split(","))
        if is_global(option):
            self.options[option].is_global = True

    def add_arg(self, *args: str) -> None:
        for option in args:
            self.add_param(option, "")

    def exists_arg(self, *args: str) -> bool:
        """True if any of the given options is present."""
        return any(option in self.options for option in args)

    def get_arg(self, *args: str) -> tuple[str, bool, bool]:
        """Return (first value, given twice, given at all) for the first option present."""
        for option in args:
            value = self.options.get(option)
            if value is not None:
                return value.first(), len(value.args) >= 2, len(value.args) >= 1
        return "", False, False

    def get_args(self, option: str) -> list[str] | None:
        value = self.options.get(option)
        return value.args if value is not None else None

    def add_target(self, *args: str) -> None:
        self.targets.extend(args)

    def clear_targets(self) -> None:
        self.targets = []

    def exists_double(self, *args: str) -> bool:
        """True if the first present option was given at least twice."""
        for option in args:
            value = self.options.get(option)
            if value is not None:
                return len(value.args) >= 2
        return False

    @staticmethod
    def _format_option(option: str, values: Iterable[str]) -> list[str]:
        formatted = _format_arg(option)
        result: list[str] = []
        for value in values:
            result.append(formatted)
            if has_param(option):
                result.append(value)
        return result

    def format_args(self) -> list[str]:
        """The operation and non-global options, formatted for pacman."""
        result: list[str] = []
        if self.op:
            result.append(_format_arg(self.op))
        for option, value in self.options.items():
            if value.is_global or option == "--":
                continue
            result.extend(self._format_option(option, value.args))
        return result

    def format_globals(self) -> list[str]:
        """The global options, formatted for pacman."""
        result: list[str] = []
        for option, value in self.options.items():
            if value.is_global:
                result.extend(self._format_option(option, value.args))
        return result

    def _parse_short_option(self, arg: str, param: str) -> bool:
        if arg == "-":
            self.add_arg("-")
            return False
        arg = arg[1:]
        for index, char in enumerate(arg):
            if has_param(char):
                if index < len(arg) - 1:
                    self.add_param(char, arg[index + 1 :])
                    return False
                self.add_param(char, param)
                return True
            self.add_arg(char)
        return False

    def _parse_long_option(self, arg: str, param: str) -> bool:
        if arg == "--":
            self.add_arg(arg)
            return False
        arg = arg[2:]
        name, sep, value = arg.partition("=")
        if sep:
            self.add_param(name, value)
            return False
        if has_param(arg):
            self.add_param(arg, param)
            return True
        self.add_arg(arg)
        return False

    def _parse_stdin(self) -> None:
        for line in sys.stdin:
            self.add_target(line.rstrip("\n").rstrip("\r"))
        sys.stdin.close()

    def parse(self, argv: list[str] | None = None) -> None:
        """Parse command line words (without the program name) into this object."""
        args = list(sys.argv[1:] if argv is None else argv)

        if not args:
            self._parse_short_option("-Syu", "")
        else:
            used_next = False
            for index, arg in enumerate(args):
                if used_next:
                    used_next = False
                    continue
                next_arg = args[index + 1] if index + 1 < len(args) else ""
                if self.exists_arg("--"):
                    self.add_target(arg)
                elif arg.startswith("--"):
                    used_next = self._parse_long_option(arg, next_arg)
                elif arg.startswith("-"):
                    used_next = self._parse_short_option(arg, next_arg)
                else:
                    self.add_target(arg)

        if not self.op:
            self.op = "Y"

        if self.exists_arg("-"):
            self._parse_stdin()
            self.del_arg("-")
            sys.stdin = open("/dev/tty", encoding="utf-8")