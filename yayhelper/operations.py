"""Package operations: splitting targets, statistics, searches and update lists."""

from __future__ import annotations

import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Sequence

import requests

from . import text
from .parser import TargetMode
from .query import (
    AURPackage,
    AURWarnings,
    SearchBy,
    SearchVerbosity,
    SourceQueryBuilder,
    aur_info,
    get_remote_packages,
)
from .upgrade import (
    REASON_EXPLICIT,
    UpSlice,
    Upgrade,
    get_version_diff,
    up_aur,
    up_devel,
    vercmp,
)

_DEVEL_SUFFIXES = ("git", "svn", "hg", "bzr", "nightly", "insiders-bin")
_RPC_TIMEOUT_SECONDS = 30

_REMOVE = 0
_KEEP = 1
_VISITED = 2


@dataclass
class Statistics:
    """Counts and size of the installed packages."""

    total_installed: int = 0
    explicitly_installed: int = 0
    total_size: int = 0


class _UpdateErrors(Exception):
    def __init__(self, errors: list[BaseException]) -> None:
        super().__init__("\n".join(str(err) for err in errors))
        self.errors = errors


class _AURRPCClient:
    """A small client of the AUR RPC interface."""

    def __init__(self, session: requests.Session | None, rpc_url: str) -> None:
        self._session = session if session is not None else requests.Session()
        self._url = rpc_url.rstrip("?")

    @classmethod
    def from_config(cls, config: Any) -> _AURRPCClient:
        url = config.runtime.aur_rpc_url or config.aur_url.rstrip("/") + "/rpc.php?"
        return cls(config.runtime.http_session, url)

    def _query(self, params: list[tuple[str, str]]) -> list[AURPackage]:
        response = self._session.get(self._url, params=params, timeout=_RPC_TIMEOUT_SECONDS)
        response.raise_for_status()
        payload = response.json()
        if payload.get("type") == "error":
            raise RuntimeError(payload.get("error") or "AUR request failed")
        return [AURPackage.from_dict(result) for result in payload.get("results") or []]

    def info(self, names: Sequence[str]) -> list[AURPackage]:
        return self._query([("v", "5"), ("type", "info"), *(("arg[]", name) for name in names)])

    def search(self, query: str, by: SearchBy) -> list[AURPackage]:
        return self._query([("v", "5"), ("type", "search"), ("by", by.value), ("arg", query)])


def package_slices(
    to_check: Iterable[str], db_executor: Any, mode: TargetMode
) -> tuple[list[str], list[str]]:
    """Split targets into (aur, repo) lists."""
    aur_names: list[str] = []
    repo_names: list[str] = []
    for target in to_check:
        db_name, name = text.split_db_from_name(target)
        if db_name == "aur" or mode == TargetMode.AUR:
            aur_names.append(target)
        elif db_name or mode == TargetMode.REPO:
            repo_names.append(target)
        elif db_executor.sync_satisfier_exists(name) or db_executor.packages_from_group(name):
            repo_names.append(target)
        else:
            aur_names.append(target)
    return aur_names, repo_names


def hanging_packages(remove_optional: bool, db_executor: Any) -> list[str]:
    """Packages installed as dependencies that nothing explicit needs any more.

    With remove_optional, optional dependencies do not keep a package.
    """
    packages = list(db_executor.local_packages())
    state: dict[str, int] = {}
    provides: dict[str, set[str]] = {}

    for pkg in packages:
        state[pkg.name] = _KEEP if pkg.reason == REASON_EXPLICIT else _REMOVE
        for dep in db_executor.package_provides(pkg):
            provides.setdefault(dep.name, set()).add(pkg.name)

    iterate_again = True
    while iterate_again:
        iterate_again = False
        for pkg in packages:
            if state.get(pkg.name, _REMOVE) != _KEEP:
                continue
            state[pkg.name] = _VISITED

            deps = list(db_executor.package_depends(pkg))
            if not remove_optional:
                deps += list(db_executor.package_optional_depends(pkg))

            for dep in deps:
                if dep.name not in state:
                    for provider in provides.get(dep.name, ()):
                        if state.get(provider, _REMOVE) == _REMOVE:
                            iterate_again = True
                            state[provider] = _KEEP
                    continue
                if state[dep.name] == _REMOVE:
                    iterate_again = True
                    state[dep.name] = _KEEP

    return [pkg.name for pkg in packages if state[pkg.name] == _REMOVE]


def statistics(db_executor: Any) -> Statistics:
    """Totals over the installed packages."""
    result = Statistics()
    for pkg in db_executor.local_packages():
        result.total_size += pkg.isize
        result.total_installed += 1
        if pkg.reason == REASON_EXPLICIT:
            result.explicitly_installed += 1
    return result


def sync_search(
    pkgs: Sequence[str], aur_client: Any, db_executor: Any, config: Any, verbose: bool
) -> None:
    """Search the sync databases and the AUR and print the results."""
    builder = SourceQueryBuilder(
        config.sort_by,
        config.runtime.mode,
        config.search_by,
        config.bottom_up,
        config.single_line_results,
    )
    builder.execute(db_executor, aur_client, pkgs)
    verbosity = SearchVerbosity.DETAILED if verbose else SearchVerbosity.MINIMAL
    builder.results(sys.stdout, db_executor, verbosity)


def is_devel_name(name: str) -> bool:
    """True for names that mark a development (VCS) package."""
    return any(name.endswith("-" + suffix) for suffix in _DEVEL_SUFFIXES) or "-always-" in name


def is_devel_package(pkg: Any) -> bool:
    return is_devel_name(pkg.name) or is_devel_name(pkg.base)


def filter_update_list(
    upgrades: Iterable[Upgrade], keep: Callable[[Upgrade], bool]
) -> list[Upgrade]:
    return [upgrade for upgrade in upgrades if keep(upgrade)]


def print_local_newer_than_aur(
    remote: Iterable[Any], aurdata: Mapping[str, AURPackage]
) -> None:
    """Warn about installed packages newer than their AUR version."""
    for pkg in remote:
        aur_pkg = aurdata.get(pkg.name)
        if aur_pkg is None:
            continue
        left, right = get_version_diff(pkg.version, aur_pkg.version)
        if not is_devel_package(pkg) and vercmp(pkg.version, aur_pkg.version) > 0:
            text.warn(f"{text.cyan(pkg.name)}: local ({left}) is newer than AUR ({right})")


def up_list(
    warnings: AURWarnings,
    db_executor: Any,
    config: Any,
    enable_downgrade: bool,
    keep: Callable[[Upgrade], bool],
) -> tuple[UpSlice, UpSlice]:
    """The (aur, repo) upgrades available, filtered by keep."""
    remote, remote_names = get_remote_packages(db_executor)
    for pkg in remote:
        if pkg.should_ignore:
            warnings.ignore.add(pkg.name)

    mode = config.runtime.mode
    errors: list[BaseException] = []
    aurdata: dict[str, AURPackage] = {}
    repo_slice: list[Upgrade] = []
    aur_up = UpSlice(up=[], repos=["aur"])
    devel_up = UpSlice(up=[], repos=["devel"])

    with ThreadPoolExecutor(max_workers=3) as pool:
        repo_future = aur_future = devel_future = None

        if mode.at_least_repo():
            text.operation_info("Searching databases for updates...")
            repo_future = pool.submit(db_executor.repo_upgrades, enable_downgrade)

        if mode.at_least_aur():
            text.operation_info("Searching AUR for updates...")
            try:
                info = aur_info(
                    _AURRPCClient.from_config(config),
                    remote_names,
                    warnings,
                    config.request_split_n,
                )
            except Exception as exc:  # any failure of the AUR request
                errors.append(exc)
            else:
                aurdata = {pkg.name: pkg for pkg in info}
                aur_future = pool.submit(up_aur, remote, aurdata, config.time_update)
                if config.devel:
                    text.operation_info("Checking development packages...")
                    devel_future = pool.submit(
                        up_devel, remote, aurdata, config.runtime.vcs_store
                    )

        if repo_future is not None:
            try:
                repo_slice = list(repo_future.result())
            except Exception as exc:  # any failure of the database query
                errors.append(exc)
        if aur_future is not None:
            aur_up = aur_future.result()
        if devel_future is not None:
            devel_up = devel_future.result()

    print_local_newer_than_aur(remote, aurdata)

    devel_names = {upgrade.name for upgrade in devel_up.up}
    combined = devel_up.up + [u for u in aur_up.up if u.name not in devel_names]

    aur_result = UpSlice(up=filter_update_list(combined, keep), repos=["aur", "devel"])
    repo_result = UpSlice(
        up=filter_update_list(repo_slice, keep), repos=list(db_executor.repos())
    )

    if errors:
        raise errors[0] if len(errors) == 1 else _UpdateErrors(errors)
    return aur_result, repo_result