"""Searching and querying packages in the sync databases and the AUR."""

from __future__ import annotations

import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Collection, Iterable, Protocol, Sequence, TextIO

from . import text
from .parser import TargetMode


@dataclass
class AURPackage:
    """A package as described by the AUR RPC interface."""

    name: str = ""
    version: str = ""
    description: str = ""
    maintainer: str = ""
    num_votes: int = 0
    popularity: float = 0.0
    first_submitted: int = 0
    last_modified: int = 0
    out_of_date: int = 0
    id: int = 0
    package_base_id: int = 0
    package_base: str = ""
    url: str = ""
    url_path: str = ""
    keywords: list[str] = field(default_factory=list)
    groups: list[str] = field(default_factory=list)
    licenses: list[str] = field(default_factory=list)
    provides: list[str] = field(default_factory=list)
    depends: list[str] = field(default_factory=list)
    make_depends: list[str] = field(default_factory=list)
    check_depends: list[str] = field(default_factory=list)
    opt_depends: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AURPackage:
        """Build a package from one result of the AUR RPC JSON reply."""

        def strings(key: str) -> list[str]:
            return list(data.get(key) or [])

        return cls(
            name=data.get("Name") or "",
            version=data.get("Version") or "",
            description=data.get("Description") or "",
            maintainer=data.get("Maintainer") or "",
            num_votes=int(data.get("NumVotes") or 0),
            popularity=float(data.get("Popularity") or 0.0),
            first_submitted=int(data.get("FirstSubmitted") or 0),
            last_modified=int(data.get("LastModified") or 0),
            out_of_date=int(data.get("OutOfDate") or 0),
            id=int(data.get("ID") or 0),
            package_base_id=int(data.get("PackageBaseID") or 0),
            package_base=data.get("PackageBase") or "",
            url=data.get("URL") or "",
            url_path=data.get("URLPath") or "",
            keywords=strings("Keywords"),
            groups=strings("Groups"),
            licenses=strings("License"),
            provides=strings("Provides"),
            depends=strings("Depends"),
            make_depends=strings("MakeDepends"),
            check_depends=strings("CheckDepends"),
            opt_depends=strings("OptDepends"),
            conflicts=strings("Conflicts"),
        )


class SearchBy(Enum):
    """The field an AUR search matches against."""

    NAME = "name"
    NAME_DESC = "name-desc"
    MAINTAINER = "maintainer"
    DEPENDS = "depends"
    MAKE_DEPENDS = "makedepends"
    OPT_DEPENDS = "optdepends"
    CHECK_DEPENDS = "checkdepends"


class SearchVerbosity(Enum):
    """How much detail search results are printed with."""

    NUMBER_MENU = 0
    DETAILED = 1
    MINIMAL = 2


class AURClient(Protocol):
    """What this module needs from an AUR client."""

    def info(self, names: Sequence[str]) -> list[AURPackage]: ...

    def search(self, query: str, by: SearchBy) -> list[AURPackage]: ...


class AURSearchError(Exception):
    """Raised when the AUR could not be searched."""

    def __init__(self, inner: BaseException) -> None:
        super().__init__(f"Error during AUR search: {inner}\n")
        self.inner = inner


class NoQueryError(Exception):
    """Raised when results are asked for but no query was executed."""

    def __init__(self) -> None:
        super().__init__("no query was executed")


class _MultipleErrors(Exception):
    def __init__(self, errors: list[BaseException]) -> None:
        super().__init__("\n".join(str(err) for err in errors))
        self.errors = errors


def _combine(errors: list[BaseException]) -> BaseException:
    return errors[0] if len(errors) == 1 else _MultipleErrors(errors)


@dataclass
class AURWarnings:
    """Problems found with AUR packages, reported together."""

    orphans: list[str] = field(default_factory=list)
    out_of_date: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    ignore: set[str] = field(default_factory=set)

    def print(self) -> None:
        normal_missing, debug_missing = filter_debug_packages(self.missing)
        for title, names in (
            ("Missing AUR Packages:", normal_missing),
            ("Missing AUR Debug Packages:", debug_missing),
            ("Orphaned AUR Packages:", self.orphans),
            ("Flagged Out Of Date AUR Packages:", self.out_of_date),
        ):
            if names:
                text.warn(title, newline=False)
                _print_range(names)


def _print_range(names: Iterable[str]) -> None:
    sys.stdout.write("".join("  " + text.cyan(name) for name in names) + "\n")


def filter_debug_packages(names: Iterable[str]) -> tuple[list[str], list[str]]:
    """Split names into (normal, debug) by the "-debug" suffix."""
    normal: list[str] = []
    debug: list[str] = []
    for name in names:
        (debug if name.endswith("-debug") else normal).append(name)
    return normal, debug


def get_package_names_by_source(db_executor: Any) -> tuple[list[str], list[str]]:
    """Names of installed packages found in the sync databases, and of the rest."""
    local: list[str] = []
    remote: list[str] = []
    for pkg in db_executor.local_packages():
        if db_executor.sync_package(pkg.name) is not None:
            local.append(pkg.name)
        else:
            remote.append(pkg.name)
    return local, remote


def get_remote_packages(db_executor: Any) -> tuple[list[Any], list[str]]:
    """Installed packages with no match in the sync databases, and their names."""
    remote = [
        pkg
        for pkg in db_executor.local_packages()
        if db_executor.sync_package(pkg.name) is None
    ]
    return remote, [pkg.name for pkg in remote]


def remove_invalid_targets(targets: Iterable[str], mode: TargetMode) -> list[str]:
    """Drop targets whose db prefix the target mode does not allow."""
    filtered: list[str] = []
    for target in targets:
        db_name, _ = text.split_db_from_name(target)
        if db_name == "aur" and not mode.at_least_aur():
            text.warn(f"{text.cyan(target)}: can't use target with option --repo -- skipping")
            continue
        if db_name not in ("aur", "") and not mode.at_least_repo():
            text.warn(f"{text.cyan(target)}: can't use target with option --aur -- skipping")
            continue
        filtered.append(target)
    return filtered


def aur_info(
    aur_client: AURClient,
    names: Sequence[str],
    warnings: AURWarnings,
    split_n: int,
) -> list[AURPackage]:
    """Look up packages in the AUR, at most split_n names per request.

    Missing, orphaned and out-of-date packages are recorded in warnings.
    """
    if split_n <= 0:
        raise ValueError("split_n must be positive")
    names = list(names)
    chunks = [names[start : start + split_n] for start in range(0, len(names), split_n)]

    info: list[AURPackage] = []
    errors: list[BaseException] = []
    if chunks:
        with ThreadPoolExecutor(max_workers=len(chunks)) as pool:
            futures = [pool.submit(aur_client.info, chunk) for chunk in chunks]
            for future in futures:
                try:
                    info.extend(future.result())
                except Exception as exc:  # client errors of any kind
                    errors.append(exc)
    if errors:
        raise _combine(errors)

    seen = {pkg.name: pkg for pkg in info}
    for name in names:
        if name in warnings.ignore:
            continue
        pkg = seen.get(name)
        if pkg is None:
            warnings.missing.append(name)
            continue
        if not pkg.maintainer:
            warnings.orphans.append(name)
        if pkg.out_of_date != 0:
            warnings.out_of_date.append(name)

    return info


def aur_info_print(
    aur_client: AURClient, names: Sequence[str], split_n: int
) -> list[AURPackage]:
    """Look up packages in the AUR and print any warnings about them."""
    text.operation_info("Querying AUR...")
    warnings = AURWarnings()
    info = aur_info(aur_client, names, warnings, split_n)
    warnings.print()
    return info


def get_search_by(value: str) -> SearchBy:
    """The search field for a config value; anything unknown means name-desc."""
    try:
        return SearchBy(value)
    except ValueError:
        return SearchBy.NAME_DESC


def _rune_key(value: str) -> list[tuple[str, str]]:
    return [(char.lower(), char) for char in value]


_SORT_KEYS: dict[str, tuple[Callable[[AURPackage], Any], bool]] = {
    "votes": (lambda p: p.num_votes, True),
    "popularity": (lambda p: p.popularity, True),
    "name": (lambda p: _rune_key(p.name), False),
    "base": (lambda p: _rune_key(p.package_base), False),
    "submitted": (lambda p: p.first_submitted, False),
    "modified": (lambda p: p.last_modified, False),
    "id": (lambda p: p.id, False),
    "baseid": (lambda p: p.package_base_id, False),
}


def sort_aur_packages(
    packages: Iterable[AURPackage], sort_by: str, bottom_up: bool
) -> list[AURPackage]:
    """Sort AUR results; bottom_up turns the order around."""
    packages = list(packages)
    entry = _SORT_KEYS.get(sort_by)
    if entry is None:
        return packages[::-1] if bottom_up else packages
    key, descending = entry
    return sorted(packages, key=key, reverse=descending != bottom_up)


def _installed_suffix(db_executor: Any, name: str, version: str) -> str:
    local = db_executor.local_package(name)
    if local is None:
        return ""
    if local.version != version:
        return text.bold(text.green(f"(Installed: {local.version})"))
    return text.bold(text.green("(Installed)"))


def print_aur_search(
    out: TextIO,
    packages: Sequence[AURPackage],
    start: int,
    db_executor: Any,
    verbosity: SearchVerbosity,
    bottom_up: bool,
    single_line: bool,
) -> None:
    """Write AUR search results; start is the menu number of the first one."""
    count = len(packages)
    for index, pkg in enumerate(packages):
        if verbosity == SearchVerbosity.MINIMAL:
            out.write(pkg.name + "\n")
            continue

        line = ""
        if verbosity == SearchVerbosity.NUMBER_MENU:
            number = count + start - index - 1 if bottom_up else start + index
            line += text.magenta(f"{number} ")

        line += (
            text.bold(text.color_hash("aur")) + "/" + text.bold(pkg.name)
            + " " + text.cyan(pkg.version)
            + text.bold(f" (+{pkg.num_votes}")
            + " " + text.bold(f"{pkg.popularity:.2f}) ")
        )
        if not pkg.maintainer:
            line += text.bold(text.red("(Orphaned)")) + " "
        if pkg.out_of_date != 0:
            line += text.bold(text.red(f"(Out-of-date: {text.format_time(pkg.out_of_date)})")) + " "
        line += _installed_suffix(db_executor, pkg.name, pkg.version)
        line += "\t" if single_line else "\n    "
        line += pkg.description
        out.write(line + "\n")


def print_repo_search(
    out: TextIO,
    packages: Sequence[Any],
    db_executor: Any,
    verbosity: SearchVerbosity,
    bottom_up: bool,
    single_line: bool,
) -> None:
    """Write sync database search results."""
    count = len(packages)
    for index, pkg in enumerate(packages):
        if verbosity == SearchVerbosity.MINIMAL:
            out.write(pkg.name + "\n")
            continue

        line = ""
        if verbosity == SearchVerbosity.NUMBER_MENU:
            number = count - index if bottom_up else index + 1
            line += text.magenta(f"{number} ")

        line += (
            text.bold(text.color_hash(pkg.db_name)) + "/" + text.bold(pkg.name)
            + " " + text.cyan(pkg.version)
            + text.bold(f" ({text.human(pkg.size)} {text.human(pkg.isize)}) ")
        )
        groups = list(db_executor.package_groups(pkg))
        if groups:
            line += "[" + " ".join(groups) + "] "
        line += _installed_suffix(db_executor, pkg.name, pkg.version)
        line += "\t" if single_line else "\n    "
        line += pkg.description
        out.write(line + "\n")


def _query_repo(pkgs: Sequence[str], db_executor: Any, bottom_up: bool) -> list[Any]:
    results = list(db_executor.sync_packages(*pkgs))
    if bottom_up:
        results.reverse()
    return results


def _query_aur(
    aur_client: AURClient,
    pkgs: Sequence[str],
    search_by: str,
    bottom_up: bool,
    sort_by: str,
) -> list[AURPackage] | None:
    """Search the AUR by the first word that works, narrowed by the other words."""
    if not pkgs:
        return None
    by = get_search_by(search_by)

    last_error: BaseException | None = None
    results: list[AURPackage] | None = None
    used_index = 0
    for index, word in enumerate(pkgs):
        try:
            results = list(aur_client.search(word, by))
        except Exception as exc:  # client errors of any kind
            last_error = exc
            continue
        used_index = index
        break
    if results is None:
        assert last_error is not None
        raise last_error

    if len(pkgs) > 1:
        others = [word.lower() for index, word in enumerate(pkgs) if index != used_index]
        results = [
            pkg
            for pkg in results
            if all(
                word in pkg.name.lower() or word in pkg.description.lower()
                for word in others
            )
        ]
    return sort_aur_packages(results, sort_by, bottom_up)


class SourceQueryBuilder:
    """Runs one search against the sync databases and the AUR and presents it."""

    def __init__(
        self,
        sort_by: str,
        target_mode: TargetMode,
        search_by: str,
        bottom_up: bool,
        single_line_results: bool,
    ) -> None:
        self.repo_query: list[Any] | None = []
        self.aur_query: list[AURPackage] | None = []
        self.sort_by = sort_by
        self.target_mode = target_mode
        self.search_by = search_by
        self.bottom_up = bottom_up
        self.single_line_results = single_line_results

    def __len__(self) -> int:
        return len(self.repo_query or ()) + len(self.aur_query or ())

    def execute(self, db_executor: Any, aur_client: AURClient, pkgs: Sequence[str]) -> None:
        """Run the search; an AUR failure leaves only repo results."""
        aur_error: BaseException | None = None
        pkgs = remove_invalid_targets(pkgs, self.target_mode)

        if self.target_mode.at_least_aur():
            try:
                self.aur_query = _query_aur(
                    aur_client, pkgs, self.search_by, self.bottom_up, self.sort_by
                )
            except Exception as exc:  # client errors of any kind
                self.aur_query = None
                aur_error = exc

        if self.target_mode.at_least_repo():
            self.repo_query = _query_repo(pkgs, db_executor, self.bottom_up)

        if aur_error is not None and self.repo_query:
            text.error(AURSearchError(aur_error))
            text.warn("Showing repo packages only")

    def results(self, out: TextIO, db_executor: Any, verbosity: SearchVerbosity) -> None:
        """Write the results; raise NoQueryError if nothing was searched."""
        if self.aur_query is None or self.repo_query is None:
            raise NoQueryError()

        def print_aur() -> None:
            if self.target_mode.at_least_aur():
                print_aur_search(
                    out, self.aur_query or [], len(self.repo_query or []) + 1,
                    db_executor, verbosity, self.bottom_up, self.single_line_results,
                )

        def print_repo() -> None:
            if self.target_mode.at_least_repo():
                print_repo_search(
                    out, self.repo_query or [], db_executor, verbosity,
                    self.bottom_up, self.single_line_results,
                )

        if self.bottom_up:
            print_aur()
            print_repo()
        else:
            print_repo()
            print_aur()

    def get_targets(
        self,
        include: Collection[int],
        exclude: Collection[int],
        other_exclude: Collection[str],
    ) -> list[str]:
        """Targets picked from the numbered results by the menu selections."""
        is_include = not exclude and not other_exclude
        repo = self.repo_query or []
        aur = self.aur_query or []

        def chosen(number: int) -> bool:
            return (is_include and number in include) or (
                not is_include and number not in exclude
            )

        targets: list[str] = []
        for index, pkg in enumerate(repo):
            number = len(repo) - index if self.bottom_up else index + 1
            if chosen(number):
                targets.append(f"{pkg.db_name}/{pkg.name}")
        for index, pkg in enumerate(aur):
            number = (
                len(aur) - index + len(repo) if self.bottom_up else index + 1 + len(repo)
            )
            if chosen(number):
                targets.append(f"aur/{pkg.name}")
        return targets