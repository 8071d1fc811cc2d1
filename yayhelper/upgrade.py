"""Finding available upgrades of foreign and development packages."""

from __future__ import annotations

import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Any, Iterable, Mapping

from . import text
from .query import AURPackage
from .vcs import InfoStore

REASON_EXPLICIT = 0
REASON_DEPEND = 1

_DIGITS = frozenset("0123456789")
_ALPHA = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ")
_ALNUM = _DIGITS | _ALPHA


@dataclass
class Upgrade:
    """One package that can be upgraded."""

    name: str
    repository: str
    local_version: str
    remote_version: str
    reason: int = REASON_EXPLICIT


def stylized_name_with_repository(upgrade: Upgrade) -> str:
    """"repo/name" with the repository coloured by its hash."""
    return text.bold(text.color_hash(upgrade.repository)) + "/" + text.bold(upgrade.name)


def get_version_diff(old_version: str, new_version: str) -> tuple[str, str]:
    """Both versions with the part that differs coloured red and green."""
    if old_version == new_version:
        return old_version + text.red(""), new_version + text.green("")

    old = old_version.encode("utf-8")
    new = new_version.encode("utf-8")

    def check_words(data: bytes, index: int, *words: str) -> bool:
        for word in words:
            encoded = word.encode("utf-8")
            following = index + 1
            if index < len(data) - len(encoded) and data[following : following + len(encoded)] == encoded:
                return True
        return False

    diff_position = 0
    index = 0
    for char in old_version:
        is_special = not (char.isalpha() or char.isnumeric())

        if index >= len(new) or ord(char) != new[index]:
            if is_special:
                diff_position = index
            break

        at_last = index == len(old) - 1 or index == len(new) - 1
        if (
            is_special
            or (at_last and (len(old) != len(new) or old[index] == new[index]))
            or check_words(old, index, "rc", "pre", "alpha", "beta")
        ):
            diff_position = index + 1

        index += len(char.encode("utf-8"))

    same = old[:diff_position].decode("utf-8", errors="replace")
    left = same + text.red(old[diff_position:].decode("utf-8", errors="replace"))
    right = same + text.green(new[diff_position:].decode("utf-8", errors="replace"))
    return left, right


@dataclass
class UpSlice:
    """Upgrades together with the repositories they come from, in order."""

    up: list[Upgrade] = field(default_factory=list)
    repos: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.up)

    def _less(self, first: Upgrade, second: Upgrade) -> bool:
        if first.repository == second.repository:
            return text.less_runes(first.name, second.name)
        for repo in self.repos:
            if repo == first.repository:
                return True
            if repo == second.repository:
                return False
        return text.less_runes(first.repository, second.repository)

    def _compare(self, first: Upgrade, second: Upgrade) -> int:
        if self._less(first, second):
            return -1
        if self._less(second, first):
            return 1
        return 0

    def sort(self) -> None:
        """Order by repository (as listed in repos first), then by name."""
        self.up.sort(key=cmp_to_key(self._compare))

    def print(self) -> None:
        """Print a numbered table of the upgrades."""
        longest_name = 0
        longest_version = 0
        for upgrade in self.up:
            longest_name = max(longest_name, len(stylized_name_with_repository(upgrade)))
            left, _ = get_version_diff(upgrade.local_version, upgrade.remote_version)
            longest_version = max(longest_version, len(left))

        number_width = len(str(len(self.up)))
        lines = []
        for position, upgrade in enumerate(self.up):
            left, right = get_version_diff(upgrade.local_version, upgrade.remote_version)
            number = text.magenta(f"{len(self.up) - position:>{number_width}}  ")
            name = stylized_name_with_repository(upgrade).ljust(longest_name) + "  "
            lines.append(f"{number}{name}{left.ljust(longest_version)} -> {right}\n")
        sys.stdout.write("".join(lines))


def _parse_evr(evr: str) -> tuple[str, str, str | None]:
    end = 0
    while end < len(evr) and evr[end] in _DIGITS:
        end += 1
    dash = evr.rfind("-", end)

    if evr[end:end + 1] == ":":
        epoch = evr[:end] or "0"
        start = end + 1
    else:
        epoch = "0"
        start = 0

    if dash != -1:
        return epoch, evr[start:dash], evr[dash + 1:]
    return epoch, evr[start:], None


def _rpmvercmp(first: str, second: str) -> int:
    if first == second:
        return 0

    one = two = 0
    ptr1 = ptr2 = 0
    while one < len(first) and two < len(second):
        while one < len(first) and first[one] not in _ALNUM:
            one += 1
        while two < len(second) and second[two] not in _ALNUM:
            two += 1

        if one >= len(first) or two >= len(second):
            break

        if one - ptr1 != two - ptr2:
            return -1 if one - ptr1 < two - ptr2 else 1

        ptr1, ptr2 = one, two
        kind = _DIGITS if first[ptr1] in _DIGITS else _ALPHA
        is_number = kind is _DIGITS
        while ptr1 < len(first) and first[ptr1] in kind:
            ptr1 += 1
        while ptr2 < len(second) and second[ptr2] in kind:
            ptr2 += 1

        segment1 = first[one:ptr1]
        segment2 = second[two:ptr2]
        if not segment2:
            return 1 if is_number else -1

        if is_number:
            segment1 = segment1.lstrip("0")
            segment2 = segment2.lstrip("0")
            if len(segment1) != len(segment2):
                return 1 if len(segment1) > len(segment2) else -1

        if segment1 != segment2:
            return -1 if segment1 < segment2 else 1

        one, two = ptr1, ptr2

    first_done = one >= len(first)
    second_done = two >= len(second)
    if first_done and second_done:
        return 0
    if (first_done and second[two] not in _ALPHA) or (not first_done and first[one] in _ALPHA):
        return -1
    return 1


def vercmp(first: str, second: str) -> int:
    """Compare two package versions ([epoch:]version[-release]): -1, 0 or 1."""
    if first == second:
        return 0
    epoch1, version1, release1 = _parse_evr(first)
    epoch2, version2, release2 = _parse_evr(second)

    result = _rpmvercmp(epoch1, epoch2)
    if result == 0:
        result = _rpmvercmp(version1, version2)
        if result == 0 and release1 is not None and release2 is not None:
            result = _rpmvercmp(release1, release2)
    return result


def _print_ignoring_package(pkg: Any, new_version: str) -> None:
    left, right = get_version_diff(pkg.version, new_version)
    text.warn(f"{text.cyan(pkg.name)}: ignoring package upgrade ({left} => {right})")


def up_aur(
    remote: Iterable[Any], aurdata: Mapping[str, AURPackage], time_update: bool
) -> UpSlice:
    """Foreign packages that have a newer version (or build) in the AUR."""
    result = UpSlice(up=[], repos=["aur"])
    for pkg in remote:
        aur_pkg = aurdata.get(pkg.name)
        if aur_pkg is None:
            continue

        newer_build = time_update and aur_pkg.last_modified > pkg.build_date
        if newer_build or vercmp(pkg.version, aur_pkg.version) < 0:
            if pkg.should_ignore:
                _print_ignoring_package(pkg, aur_pkg.version)
            else:
                result.up.append(
                    Upgrade(
                        name=aur_pkg.name,
                        repository="aur",
                        local_version=pkg.version,
                        remote_version=aur_pkg.version,
                        reason=pkg.reason,
                    )
                )
    return result


def up_devel(
    remote: Iterable[Any], aurdata: Mapping[str, AURPackage], local_cache: InfoStore
) -> UpSlice:
    """Development packages whose tracked repositories have new commits.

    Tracked packages that are no longer installed or in the AUR are forgotten.
    """
    remote = list(remote)
    origins = list(local_cache.origins_by_package.items())
    to_update: list[Any] = []
    to_remove: list[str] = []

    if origins:
        with ThreadPoolExecutor(max_workers=len(origins)) as pool:
            checks = [
                (name, pool.submit(local_cache.needs_update, infos))
                for name, infos in origins
            ]
            for name, future in checks:
                if not future.result():
                    continue
                if name in aurdata:
                    pkg = next((p for p in remote if p.name == name), None)
                    if pkg is not None:
                        to_update.append(pkg)
                        continue
                to_remove.append(name)

    result = UpSlice(up=[], repos=["devel"])
    for pkg in to_update:
        if pkg.should_ignore:
            _print_ignoring_package(pkg, "latest-commit")
        else:
            result.up.append(
                Upgrade(
                    name=pkg.name,
                    repository="devel",
                    local_version=pkg.version,
                    remote_version="latest-commit",
                )
            )

    local_cache.remove_package(to_remove)
    return result