"""User configuration: defaults, the JSON config file, directories and options."""

from __future__ import annotations

import json
import os
import re
import shutil
import sys
from dataclasses import MISSING, dataclass, field, fields
from typing import Any

import requests

from . import text
from .exe import CmdBuilder, OSRunner
from .parser import Arguments, TargetMode
from .vcs import InfoStore

CONFIG_FILE_NAME = "config.json"
VCS_FILE_NAME = "vcs.json"
COMPLETION_FILE_NAME = "completion.cache"
SYSTEMD_CACHE = "/var/cache/yay"

# Whether pacman's provider menus must be hidden.
hide_menus = False
# Whether user input should be skipped.
no_confirm = False


class PrivilegeElevatorNotFoundError(Exception):
    """Raised when no sudo-like program can be found."""

    def __init__(self, conf_value: str) -> None:
        super().__init__(
            f"unable to find a privilege elevator, config value: {conf_value}"
        )
        self.conf_value = conf_value


class RuntimeDirError(OSError):
    """Raised when a directory the program needs cannot be created."""

    def __init__(self, inner: BaseException, directory: str) -> None:
        super().__init__(f"failed to create directory '{directory}': {inner}")
        self.inner = inner
        self.directory = directory


class UserAbortError(Exception):
    """Raised when the user aborts an operation."""

    def __init__(self) -> None:
        super().__init__("aborting due to user")


@dataclass
class Runtime:
    """State built at start-up that is never written to the config file."""

    mode: TargetMode = TargetMode.ANY
    save_config: bool = False
    completion_path: str = ""
    config_path: str = ""
    pacman_conf: Any = None
    vcs_store: InfoStore | None = None
    cmd_builder: CmdBuilder | None = None
    http_session: requests.Session | None = None
    aur_rpc_url: str = ""


_ENV_PATTERN = re.compile(
    r"\$(?:\{([*#$@!?0-9-])\}|\{\}|\{([^}]+)\}|\{|([*#$@!?0-9-])|([A-Za-z0-9_]+))"
)
_ATOI_PATTERN = re.compile(r"[+-]?[0-9]+")


def _expand_env(value: str) -> str:
    """Replace $VAR and ${VAR} by their values; unset variables become empty."""

    def replace(match: re.Match[str]) -> str:
        name = next((group for group in match.groups() if group is not None), "")
        return os.environ.get(name, "") if name else ""

    return _ENV_PATTERN.sub(replace, value)


def _atoi(value: str) -> int | None:
    if _ATOI_PATTERN.fullmatch(value):
        return int(value)
    return None


def _opt(json_key: str, default: Any = MISSING, *, factory: Any = None, kind: type | None = None) -> Any:
    metadata = {"json": json_key, "kind": kind if kind is not None else type(default)}
    if factory is not None:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


def _default_build_dir() -> str:
    return _expand_env("$HOME/.cache/yay")


@dataclass
class Configuration:
    """The program's settings, as stored in the JSON config file."""

    aur_url: str = _opt("aururl", "https://aur.archlinux.org")
    build_dir: str = _opt("buildDir", factory=_default_build_dir, kind=str)
    editor: str = _opt("editor", "")
    editor_flags: str = _opt("editorflags", "")
    makepkg_bin: str = _opt("makepkgbin", "makepkg")
    makepkg_conf: str = _opt("makepkgconf", "")
    pacman_bin: str = _opt("pacmanbin", "pacman")
    pacman_conf: str = _opt("pacmanconf", "/etc/pacman.conf")
    re_download: str = _opt("redownload", "no")
    re_build: str = _opt("rebuild", "no")
    answer_clean: str = _opt("answerclean", "")
    answer_diff: str = _opt("answerdiff", "")
    answer_edit: str = _opt("answeredit", "")
    answer_upgrade: str = _opt("answerupgrade", "")
    git_bin: str = _opt("gitbin", "git")
    gpg_bin: str = _opt("gpgbin", "gpg")
    gpg_flags: str = _opt("gpgflags", "")
    mflags: str = _opt("mflags", "")
    sort_by: str = _opt("sortby", "votes")
    search_by: str = _opt("searchby", "name-desc")
    git_flags: str = _opt("gitflags", "")
    remove_make: str = _opt("removemake", "ask")
    sudo_bin: str = _opt("sudobin", "sudo")
    sudo_flags: str = _opt("sudoflags", "")
    request_split_n: int = _opt("requestsplitn", 150)
    completion_interval: int = _opt("completionrefreshtime", 7)
    bottom_up: bool = _opt("bottomup", True)
    sudo_loop: bool = _opt("sudoloop", False)
    time_update: bool = _opt("timeupdate", False)
    devel: bool = _opt("devel", False)
    clean_after: bool = _opt("cleanAfter", False)
    provides: bool = _opt("provides", True)
    pgp_fetch: bool = _opt("pgpfetch", True)
    upgrade_menu: bool = _opt("upgrademenu", True)
    clean_menu: bool = _opt("cleanmenu", True)
    diff_menu: bool = _opt("diffmenu", True)
    edit_menu: bool = _opt("editmenu", False)
    combined_upgrade: bool = _opt("combinedupgrade", False)
    use_ask: bool = _opt("useask", False)
    batch_install: bool = _opt("batchinstall", False)
    single_line_results: bool = _opt("singlelineresults", False)
    runtime: Runtime = field(default_factory=Runtime, repr=False, compare=False)

    def _json_dict(self) -> dict[str, Any]:
        return {
            f.metadata["json"]: getattr(self, f.name)
            for f in fields(self)
            if "json" in f.metadata
        }

    def to_json(self) -> str:
        """The configuration as tab-indented JSON, ending in a newline."""
        encoded = json.dumps(self._json_dict(), indent="\t", ensure_ascii=False)
        for char, escape in (
            ("<", "\\u003c"),
            (">", "\\u003e"),
            ("&", "\\u0026"),
            ("\u2028", "\\u2028"),
            ("\u2029", "\\u2029"),
        ):
            encoded = encoded.replace(char, escape)
        return encoded + "\n"

    def save(self, config_path: str) -> None:
        """Write the configuration to a file, creating its directory if needed."""
        directory = os.path.dirname(config_path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, 0o755, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as handle:
            handle.write(self.to_json())
            handle.flush()
            os.fsync(handle.fileno())

    def expand_env(self) -> None:
        """Expand environment variables in every string setting."""
        for f in fields(self):
            if f.metadata.get("kind") is str:
                setattr(self, f.name, _expand_env(getattr(self, f.name)))

    def set_privilege_elevator(self) -> None:
        """Keep the configured elevator if it exists, else find another one."""
        for candidate in (self.sudo_bin, "sudo"):
            if candidate and shutil.which(candidate):
                self.sudo_bin = candidate
                return

        self.sudo_flags = ""
        self.sudo_loop = False

        for candidate in ("doas", "pkexec", "su"):
            if shutil.which(candidate):
                self.sudo_bin = candidate
                return

        raise PrivilegeElevatorNotFoundError(self.sudo_bin)

    def load(self, config_path: str) -> None:
        """Read settings from a JSON file; problems are reported, not raised."""
        try:
            with open(config_path, encoding="utf-8") as handle:
                raw = handle.read()
        except FileNotFoundError:
            return
        except OSError as exc:
            print(f"failed to open config file '{config_path}': {exc}", file=sys.stderr)
            return

        def report(reason: Any) -> None:
            print(f"failed to read config file '{config_path}': {reason}", file=sys.stderr)

        try:
            data = json.loads(raw)
        except ValueError as exc:
            report(exc)
            return
        if data is None:
            return
        if not isinstance(data, dict):
            report("cannot unmarshal a non-object into the configuration")
            return

        by_key = {
            f.metadata["json"].lower(): f for f in fields(self) if "json" in f.metadata
        }
        first_problem = None
        for key, value in data.items():
            target = by_key.get(key.lower())
            if target is None or value is None:
                continue
            kind = target.metadata["kind"]
            valid = (
                isinstance(value, bool)
                if kind is bool
                else isinstance(value, kind) and not isinstance(value, bool)
            )
            if valid:
                setattr(self, target.name, value)
            elif first_problem is None:
                first_problem = (
                    f"cannot unmarshal {value!r} into field "
                    f"{target.metadata['json']} of type {kind.__name__}"
                )
        if first_problem is not None:
            report(first_problem)

    def cmd_builder(self, runner: Any = None) -> CmdBuilder:
        """A command builder using this configuration's programs and flags."""
        return CmdBuilder(
            git_bin=self.git_bin,
            git_flags=self.git_flags.split(),
            makepkg_flags=self.mflags.split(),
            makepkg_conf_path=self.makepkg_conf,
            makepkg_bin=self.makepkg_bin,
            sudo_bin=self.sudo_bin,
            sudo_flags=self.sudo_flags.split(),
            sudo_loop_enabled=self.sudo_loop,
            pacman_bin=self.pacman_bin,
            pacman_config_path=self.pacman_conf,
            pacman_db_path="",
            runner=runner if runner is not None else OSRunner(),
        )

    def parse_command_line(self, args: Arguments, argv: list[str] | None = None) -> None:
        """Parse the command line, taking the program's own options out of it."""
        args.parse(argv)
        self.extract_yay_options(args)
        self.runtime.cmd_builder = self.cmd_builder()

    def extract_yay_options(self, args: Arguments) -> None:
        """Apply and remove every option that is handled here rather than by pacman."""
        for option, value in list(args.options.items()):
            if self.handle_option(option, value.first()):
                args.del_arg(option)

        self.runtime.aur_rpc_url = self.aur_url.rstrip("/") + "/rpc.php?"
        self.aur_url = self.aur_url.rstrip("/")

    def handle_option(self, option: str, value: str) -> bool:
        """Apply one option; return False if it is not one of ours."""
        global no_confirm

        if option in _VALUE_OPTIONS:
            setattr(self, _VALUE_OPTIONS[option], value)
        elif option in _FIXED_OPTIONS:
            attr, fixed = _FIXED_OPTIONS[option]
            setattr(self, attr, fixed)
        elif option == "save":
            self.runtime.save_config = True
        elif option == "completioninterval":
            number = _atoi(value)
            if number is not None:
                self.completion_interval = number
        elif option == "requestsplitn":
            number = _atoi(value)
            if number is not None and number > 0:
                self.request_split_n = number
        elif option == "noconfirm":
            no_confirm = True
        elif option in ("a", "aur"):
            self.runtime.mode = TargetMode.AUR
        elif option == "repo":
            self.runtime.mode = TargetMode.REPO
        else:
            return False
        return True


_VALUE_OPTIONS = {
    "aururl": "aur_url",
    "sortby": "sort_by",
    "searchby": "search_by",
    "config": "pacman_conf",
    "answerclean": "answer_clean",
    "answerdiff": "answer_diff",
    "answeredit": "answer_edit",
    "answerupgrade": "answer_upgrade",
    "gpgflags": "gpg_flags",
    "mflags": "mflags",
    "gitflags": "git_flags",
    "builddir": "build_dir",
    "editor": "editor",
    "editorflags": "editor_flags",
    "makepkg": "makepkg_bin",
    "makepkgconf": "makepkg_conf",
    "pacman": "pacman_bin",
    "git": "git_bin",
    "gpg": "gpg_bin",
    "sudo": "sudo_bin",
    "sudoflags": "sudo_flags",
}

_FIXED_OPTIONS: dict[str, tuple[str, Any]] = {
    "afterclean": ("clean_after", True),
    "cleanafter": ("clean_after", True),
    "noafterclean": ("clean_after", False),
    "nocleanafter": ("clean_after", False),
    "devel": ("devel", True),
    "nodevel": ("devel", False),
    "timeupdate": ("time_update", True),
    "notimeupdate": ("time_update", False),
    "topdown": ("bottom_up", False),
    "bottomup": ("bottom_up", True),
    "singlelineresults": ("single_line_results", True),
    "doublelineresults": ("single_line_results", False),
    "redownload": ("re_download", "yes"),
    "redownloadall": ("re_download", "all"),
    "noredownload": ("re_download", "no"),
    "rebuild": ("re_build", "yes"),
    "rebuildall": ("re_build", "all"),
    "rebuildtree": ("re_build", "tree"),
    "norebuild": ("re_build", "no"),
    "batchinstall": ("batch_install", True),
    "nobatchinstall": ("batch_install", False),
    "noanswerclean": ("answer_clean", ""),
    "noanswerdiff": ("answer_diff", ""),
    "noansweredit": ("answer_edit", ""),
    "noanswerupgrade": ("answer_upgrade", ""),
    "nomakepkgconf": ("makepkg_conf", ""),
    "sudoloop": ("sudo_loop", True),
    "nosudoloop": ("sudo_loop", False),
    "provides": ("provides", True),
    "noprovides": ("provides", False),
    "pgpfetch": ("pgp_fetch", True),
    "nopgpfetch": ("pgp_fetch", False),
    "upgrademenu": ("upgrade_menu", True),
    "noupgrademenu": ("upgrade_menu", False),
    "cleanmenu": ("clean_menu", True),
    "nocleanmenu": ("clean_menu", False),
    "diffmenu": ("diff_menu", True),
    "nodiffmenu": ("diff_menu", False),
    "editmenu": ("edit_menu", True),
    "noeditmenu": ("edit_menu", False),
    "useask": ("use_ask", True),
    "nouseask": ("use_ask", False),
    "combinedupgrade": ("combined_upgrade", True),
    "nocombinedupgrade": ("combined_upgrade", False),
    "removemake": ("remove_make", "yes"),
    "noremovemake": ("remove_make", "no"),
    "askremovemake": ("remove_make", "ask"),
}


def default_config() -> Configuration:
    """A configuration holding the built-in defaults."""
    return Configuration()


def init_dir(directory: str) -> None:
    """Create a directory (and its parents) if it does not exist yet."""
    try:
        os.stat(directory)
    except FileNotFoundError:
        try:
            os.makedirs(directory, 0o755, exist_ok=True)
        except OSError as exc:
            raise RuntimeDirError(exc, directory) from exc


def get_config_path() -> str:
    """The config file path, creating its directory; "" if none can be made."""
    for base, parts in (
        (os.environ.get("XDG_CONFIG_HOME", ""), ("yay",)),
        (os.environ.get("HOME", ""), (".config", "yay")),
    ):
        if not base:
            continue
        config_dir = os.path.join(base, *parts)
        try:
            init_dir(config_dir)
        except OSError:
            continue
        return os.path.join(config_dir, CONFIG_FILE_NAME)
    return ""


def _temp_dir() -> str:
    return os.environ.get("TMPDIR") or "/tmp"


def _select_cache_home() -> tuple[str, OSError | None]:
    uid = os.geteuid()
    if uid != 0:
        for base, parts in (
            (os.environ.get("XDG_CACHE_HOME", ""), ("yay",)),
            (os.environ.get("HOME", ""), (".cache", "yay")),
        ):
            if not base:
                continue
            cache_dir = os.path.join(base, *parts)
            try:
                init_dir(cache_dir)
            except OSError:
                continue
            return cache_dir, None

    if uid == 0 and not os.environ.get("SUDO_USER") and not os.environ.get("DOAS_USER"):
        # systemd-run creates this directory itself
        return SYSTEMD_CACHE, None

    tmp_dir = os.path.join(_temp_dir(), "yay")
    try:
        init_dir(tmp_dir)
    except OSError as exc:
        return tmp_dir, exc
    return tmp_dir, None


def get_cache_home() -> str:
    """The cache directory, created if needed."""
    path, problem = _select_cache_home()
    if problem is not None:
        raise problem
    return path


def new_config(version: str) -> Configuration:
    """Build the configuration from defaults, the config file and the environment."""
    config = default_config()

    cache_home, problem = _select_cache_home()
    if problem is not None:
        text.error(problem)
    config.build_dir = cache_home

    config_path = get_config_path()
    config.load(config_path)

    aurdest = os.environ.get("AURDEST")
    if aurdest:
        config.build_dir = aurdest

    config.expand_env()

    if config.build_dir != SYSTEMD_CACHE:
        init_dir(config.build_dir)

    config.set_privilege_elevator()

    session = requests.Session()
    session.headers["User-Agent"] = f"Yay/{version}"

    cmd_builder = config.cmd_builder()
    config.runtime = Runtime(
        mode=TargetMode.ANY,
        save_config=False,
        completion_path=os.path.join(cache_home, COMPLETION_FILE_NAME),
        config_path=config_path,
        pacman_conf=None,
        cmd_builder=cmd_builder,
        http_session=session,
        aur_rpc_url=config.aur_url.rstrip("/") + "/rpc.php?",
    )
    config.runtime.vcs_store = InfoStore(
        os.path.join(cache_home, VCS_FILE_NAME), cmd_builder
    )
    config.runtime.vcs_store.load()
    return config