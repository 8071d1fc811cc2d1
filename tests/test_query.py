import io
from dataclasses import dataclass, field

import pytest

from yayhelper import text
from yayhelper.parser import TargetMode
from yayhelper.query import (
    AURPackage,
    AURSearchError,
    AURWarnings,
    NoQueryError,
    SearchBy,
    SearchVerbosity,
    SourceQueryBuilder,
    aur_info,
    filter_debug_packages,
    get_package_names_by_source,
    get_remote_packages,
    get_search_by,
    print_aur_search,
    print_repo_search,
    remove_invalid_targets,
    sort_aur_packages,
)


@dataclass
class RepoPackage:
    name: str
    version: str = "1.0.0"
    description: str = ""
    size: int = 1
    isize: int = 1
    db_name: str = ""


@dataclass
class FakeExecutor:
    local: list = field(default_factory=list)
    sync: list = field(default_factory=list)

    def local_packages(self):
        return list(self.local)

    def local_package(self, name):
        return next((p for p in self.local if p.name == name), None)

    def sync_package(self, name):
        return next((p for p in self.sync if p.name == name), None)

    def sync_packages(self, *names):
        return [p for p in self.sync if any(n in p.name for n in names)]

    def package_groups(self, pkg):
        return []


class FakeClient:
    def __init__(self, packages=(), fail_words=(), fail_info=False):
        self.packages = list(packages)
        self.fail_words = set(fail_words)
        self.fail_info = fail_info
        self.info_calls = []

    def info(self, names):
        self.info_calls.append(list(names))
        if self.fail_info:
            raise RuntimeError("rpc down")
        return [p for p in self.packages if p.name in names]

    def search(self, query, by):
        if query in self.fail_words:
            raise RuntimeError("search failed")
        return [p for p in self.packages if query in p.name]


PKG_A = AURPackage(
    name="package-a", version="1.0.0",
    description="Package A description", maintainer="Package A Maintainer",
)
PKG_B = AURPackage(
    name="package-b", version="1.0.0",
    description="Package B description", maintainer="Package B Maintainer",
)
PKG_A_REPO = RepoPackage("package-a", "1.0.0", "Package A description", 1, 1, "dba")
PKG_B_REPO = RepoPackage("package-b", "1.0.0", "Package B description", 1, 1, "dbb")


@pytest.fixture(autouse=True)
def _no_color():
    text.set_use_color(False)
    yield
    text.set_use_color(False)


AUR_CASES = [
    (SearchVerbosity.MINIMAL, False, False, "package-a\npackage-b\n"),
    (SearchVerbosity.NUMBER_MENU, False, False,
     "1 aur/package-a 1.0.0 (+0 0.00) \n    Package A description\n"
     "2 aur/package-b 1.0.0 (+0 0.00) \n    Package B description\n"),
    (SearchVerbosity.NUMBER_MENU, True, False,
     "1 aur/package-a 1.0.0 (+0 0.00) \tPackage A description\n"
     "2 aur/package-b 1.0.0 (+0 0.00) \tPackage B description\n"),
    (SearchVerbosity.DETAILED, False, False,
     "aur/package-a 1.0.0 (+0 0.00) \n    Package A description\n"
     "aur/package-b 1.0.0 (+0 0.00) \n    Package B description\n"),
    (SearchVerbosity.DETAILED, True, False,
     "aur/package-a 1.0.0 (+0 0.00) \tPackage A description\n"
     "aur/package-b 1.0.0 (+0 0.00) \tPackage B description\n"),
    (SearchVerbosity.DETAILED, False, True,
     "\x1b[1m\x1b[34maur\x1b[0m\x1b[0m/\x1b[1mpackage-a\x1b[0m \x1b[36m1.0.0\x1b[0m\x1b[1m (+0\x1b[0m \x1b[1m0.00) \x1b[0m\n    Package A description\n"
     "\x1b[1m\x1b[34maur\x1b[0m\x1b[0m/\x1b[1mpackage-b\x1b[0m \x1b[36m1.0.0\x1b[0m\x1b[1m (+0\x1b[0m \x1b[1m0.00) \x1b[0m\n    Package B description\n"),
    (SearchVerbosity.DETAILED, True, True,
     "\x1b[1m\x1b[34maur\x1b[0m\x1b[0m/\x1b[1mpackage-a\x1b[0m \x1b[36m1.0.0\x1b[0m\x1b[1m (+0\x1b[0m \x1b[1m0.00) \x1b[0m\tPackage A description\n"
     "\x1b[1m\x1b[34maur\x1b[0m\x1b[0m/\x1b[1mpackage-b\x1b[0m \x1b[36m1.0.0\x1b[0m\x1b[1m (+0\x1b[0m \x1b[1m0.00) \x1b[0m\tPackage B description\n"),
]


@pytest.mark.parametrize("verbosity,single,color,want", AUR_CASES)
def test_print_aur_search(verbosity, single, color, want):
    text.set_use_color(color)
    out = io.StringIO()
    print_aur_search(out, [PKG_A, PKG_B], 1, FakeExecutor(), verbosity, False, single)
    assert out.getvalue() == want


def test_print_aur_search_no_packages():
    text.set_use_color(True)
    out = io.StringIO()
    print_aur_search(out, [], 1, FakeExecutor(), SearchVerbosity.DETAILED, False, True)
    assert out.getvalue() == ""


REPO_CASES = [
    (SearchVerbosity.MINIMAL, False, False, "package-a\npackage-b\n"),
    (SearchVerbosity.NUMBER_MENU, False, False,
     "1 dba/package-a 1.0.0 (1.0 B 1.0 B) \n    Package A description\n"
     "2 dbb/package-b 1.0.0 (1.0 B 1.0 B) \n    Package B description\n"),
    (SearchVerbosity.NUMBER_MENU, True, False,
     "1 dba/package-a 1.0.0 (1.0 B 1.0 B) \tPackage A description\n"
     "2 dbb/package-b 1.0.0 (1.0 B 1.0 B) \tPackage B description\n"),
    (SearchVerbosity.DETAILED, False, False,
     "dba/package-a 1.0.0 (1.0 B 1.0 B) \n    Package A description\n"
     "dbb/package-b 1.0.0 (1.0 B 1.0 B) \n    Package B description\n"),
    (SearchVerbosity.DETAILED, True, False,
     "dba/package-a 1.0.0 (1.0 B 1.0 B) \tPackage A description\n"
     "dbb/package-b 1.0.0 (1.0 B 1.0 B) \tPackage B description\n"),
    (SearchVerbosity.DETAILED, False, True,
     "\x1b[1m\x1b[35mdba\x1b[0m\x1b[0m/\x1b[1mpackage-a\x1b[0m \x1b[36m1.0.0\x1b[0m\x1b[1m (1.0 B 1.0 B) \x1b[0m\n    Package A description\n"
     "\x1b[1m\x1b[36mdbb\x1b[0m\x1b[0m/\x1b[1mpackage-b\x1b[0m \x1b[36m1.0.0\x1b[0m\x1b[1m (1.0 B 1.0 B) \x1b[0m\n    Package B description\n"),
    (SearchVerbosity.DETAILED, True, True,
     "\x1b[1m\x1b[35mdba\x1b[0m\x1b[0m/\x1b[1mpackage-a\x1b[0m \x1b[36m1.0.0\x1b[0m\x1b[1m (1.0 B 1.0 B) \x1b[0m\tPackage A description\n"
     "\x1b[1m\x1b[36mdbb\x1b[0m\x1b[0m/\x1b[1mpackage-b\x1b[0m \x1b[36m1.0.0\x1b[0m\x1b[1m (1.0 B 1.0 B) \x1b[0m\tPackage B description\n"),
]


@pytest.mark.parametrize("verbosity,single,color,want", REPO_CASES)
def test_print_repo_search(verbosity, single, color, want):
    text.set_use_color(color)
    out = io.StringIO()
    print_repo_search(out, [PKG_A_REPO, PKG_B_REPO], FakeExecutor(), verbosity, False, single)
    assert out.getvalue() == want


def test_print_repo_search_no_packages():
    text.set_use_color(True)
    out = io.StringIO()
    print_repo_search(out, [], FakeExecutor(), SearchVerbosity.DETAILED, False, True)
    assert out.getvalue() == ""


def test_print_aur_search_marks_installed_and_orphaned():
    orphan = AURPackage(name="orphan", version="2.0", description="d")
    executor = FakeExecutor(local=[RepoPackage("orphan", "1.0")])
    out = io.StringIO()
    print_aur_search(out, [orphan], 1, executor, SearchVerbosity.DETAILED, False, True)
    assert out.getvalue() == "aur/orphan 2.0 (+0 0.00) (Orphaned) (Installed: 1.0)\td\n"


def test_filter_debug_packages():
    normal, debug = filter_debug_packages(["a", "b-debug", "c"])
    assert normal == ["a", "c"]
    assert debug == ["b-debug"]


def test_remove_invalid_targets():
    targets = ["aur/x", "core/y", "z"]
    assert remove_invalid_targets(targets, TargetMode.ANY) == targets
    assert remove_invalid_targets(targets, TargetMode.REPO) == ["core/y", "z"]
    assert remove_invalid_targets(targets, TargetMode.AUR) == ["aur/x", "z"]


def test_package_names_by_source():
    executor = FakeExecutor(
        local=[RepoPackage("a"), RepoPackage("b"), RepoPackage("c")],
        sync=[RepoPackage("b")],
    )
    assert get_package_names_by_source(executor) == (["b"], ["a", "c"])
    remote, names = get_remote_packages(executor)
    assert names == ["a", "c"]
    assert [p.name for p in remote] == ["a", "c"]


def test_aur_info_splits_and_warns():
    packages = [
        AURPackage(name="ok", maintainer="someone"),
        AURPackage(name="orphan"),
        AURPackage(name="old", maintainer="someone", out_of_date=5),
    ]
    client = FakeClient(packages)
    warnings = AURWarnings(ignore={"ignored"})
    info = aur_info(client, ["ok", "orphan", "old", "gone", "ignored"], warnings, 2)
    assert sorted(p.name for p in info) == ["ok", "old", "orphan"]
    assert client.info_calls == [["ok", "orphan"], ["old", "gone"], ["ignored"]]
    assert warnings.missing == ["gone"]
    assert warnings.orphans == ["orphan"]
    assert warnings.out_of_date == ["old"]


def test_aur_info_raises_on_client_error():
    with pytest.raises(RuntimeError, match="rpc down"):
        aur_info(FakeClient(fail_info=True), ["a"], AURWarnings(), 10)


def test_get_search_by():
    assert get_search_by("maintainer") is SearchBy.MAINTAINER
    assert get_search_by("makedepends") is SearchBy.MAKE_DEPENDS
    assert get_search_by("whatever") is SearchBy.NAME_DESC


def test_sort_aur_packages_by_votes():
    pkgs = [AURPackage(name="a", num_votes=1), AURPackage(name="b", num_votes=5),
            AURPackage(name="c", num_votes=3)]
    assert [p.name for p in sort_aur_packages(pkgs, "votes", False)] == ["b", "c", "a"]
    assert [p.name for p in sort_aur_packages(pkgs, "votes", True)] == ["a", "c", "b"]


def test_sort_aur_packages_by_name_is_case_insensitive():
    pkgs = [AURPackage(name="beta"), AURPackage(name="Alpha"), AURPackage(name="alpha")]
    assert [p.name for p in sort_aur_packages(pkgs, "name", False)] == ["Alpha", "alpha", "beta"]


def test_builder_results_and_targets():
    executor = FakeExecutor(sync=[PKG_A_REPO, PKG_B_REPO])
    client = FakeClient([AURPackage(name="package-c", description="c")])
    builder = SourceQueryBuilder("votes", TargetMode.ANY, "name", False, True)
    builder.execute(executor, client, ["package"])
    assert len(builder) == 3

    out = io.StringIO()
    builder.results(out, executor, SearchVerbosity.MINIMAL)
    assert out.getvalue() == "package-a\npackage-b\npackage-c\n"

    assert builder.get_targets({1, 3}, set(), set()) == ["dba/package-a", "aur/package-c"]
    assert builder.get_targets(set(), {2}, set()) == ["dba/package-a", "aur/package-c"]


def test_builder_bottom_up_numbering():
    executor = FakeExecutor(sync=[PKG_A_REPO, PKG_B_REPO])
    client = FakeClient([AURPackage(name="package-c")])
    builder = SourceQueryBuilder("votes", TargetMode.ANY, "name", True, True)
    builder.execute(executor, client, ["package"])
    assert [p.name for p in builder.repo_query] == ["package-b", "package-a"]
    assert builder.get_targets({3}, set(), set()) == ["aur/package-c"]
    assert builder.get_targets({2}, set(), set()) == ["dbb/package-b"]


def test_builder_narrows_by_other_words():
    client = FakeClient([
        AURPackage(name="foo-bar", description="x"),
        AURPackage(name="foo", description="has BAR inside"),
        AURPackage(name="foo-baz", description="nothing"),
    ])
    builder = SourceQueryBuilder("name", TargetMode.AUR, "name", False, True)
    builder.execute(FakeExecutor(), client, ["foo", "bar"])
    assert [p.name for p in builder.aur_query] == ["foo", "foo-bar"]


def test_builder_aur_failure_shows_repo_only(capsys):
    executor = FakeExecutor(sync=[PKG_A_REPO])
    client = FakeClient(fail_words={"package"})
    builder = SourceQueryBuilder("votes", TargetMode.ANY, "name", False, True)
    builder.execute(executor, client, ["package"])
    assert "Error during AUR search" in capsys.readouterr().err
    with pytest.raises(NoQueryError):
        builder.results(io.StringIO(), executor, SearchVerbosity.MINIMAL)


def test_builder_without_targets_has_no_query():
    builder = SourceQueryBuilder("votes", TargetMode.ANY, "name", False, True)
    builder.execute(FakeExecutor(), FakeClient(), [])
    with pytest.raises(NoQueryError, match="no query was executed"):
        builder.results(io.StringIO(), FakeExecutor(), SearchVerbosity.MINIMAL)


def test_aur_search_error_message():
    assert str(AURSearchError(ValueError("boom"))) == "Error during AUR search: boom\n"


def test_aur_package_from_dict():
    pkg = AURPackage.from_dict(
        {"Name": "x", "Version": "1-1", "NumVotes": 3, "Maintainer": None,
         "OutOfDate": None, "Depends": ["a", "b"]}
    )
    assert (pkg.name, pkg.version, pkg.num_votes) == ("x", "1-1", 3)
    assert pkg.maintainer == "" and pkg.out_of_date == 0
    assert pkg.depends == ["a", "b"]


def test_warnings_print(capsys):
    warnings = AURWarnings(missing=["a", "b-debug"], orphans=["c"])
    warnings.print()
    out = capsys.readouterr().out
    assert "Missing AUR Packages:  a\n" in out
    assert "Missing AUR Debug Packages:  b-debug\n" in out
    assert "Orphaned AUR Packages:  c\n" in out
    assert "Out Of Date" not in out