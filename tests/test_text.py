import io
import time

import pytest

from yayhelper import text


@pytest.fixture(autouse=True)
def _restore_color():
    yield
    text.set_use_color(True)


@pytest.fixture
def utc(monkeypatch):
    monkeypatch.setenv("TZ", "UTC")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.mark.parametrize(
    "first,second,want",
    [
        (None, None, False),
        ([], [], False),
        (["a"], ["b"], True),
        (["b"], ["a"], False),
        (["a", "a", "a"], ["a", "a", "a"], False),
        (["a"], ["A"], False),
        (["a", "b"], ["a"], False),
        (["a"], ["a", "b"], True),
        (["世", "2", "0"], ["世", "界", "3"], True),
    ],
)
def test_less_runes(first, second, want):
    assert text.less_runes(first, second) is want


def test_less_runes_accepts_strings():
    assert text.less_runes("Apple", "banana") is True
    assert text.less_runes("A", "a") is True


@pytest.mark.parametrize(
    "pkg,want",
    [
        ("core/pacman", ("core", "pacman")),
        ("pacman", ("", "pacman")),
        ("a/b/c", ("a", "b/c")),
        ("", ("", "")),
    ],
)
def test_split_db_from_name(pkg, want):
    assert text.split_db_from_name(pkg) == want


def test_colors_enabled():
    assert text.red("x") == "\x1b[31mx\x1b[0m"
    assert text.green("x") == "\x1b[32mx\x1b[0m"
    assert text.cyan("x") == "\x1b[36mx\x1b[0m"
    assert text.magenta("x") == "\x1b[35mx\x1b[0m"
    assert text.blue("x") == "\x1b[34mx\x1b[0m"
    assert text.bold("x") == "\x1b[1mx\x1b[0m"


def test_colors_disabled():
    text.set_use_color(False)
    assert text.red("x") == "x"
    assert text.bold(text.cyan("y")) == "y"
    assert text.color_hash("aur") == "aur"


@pytest.mark.parametrize(
    "name,code",
    [("aur", 34), ("dba", 35), ("dbb", 36)],
)
def test_color_hash(name, code):
    assert text.color_hash(name) == f"\x1b[{code}m{name}\x1b[0m"


def test_color_hash_uses_a_color_code_in_range():
    result = text.color_hash("extra")
    assert result.startswith("\x1b[")
    assert result.endswith("mextra\x1b[0m")
    code = int(result[2:result.index("m")])
    assert 31 <= code <= 36


@pytest.mark.parametrize(
    "size,want",
    [
        (0, "0.0 B"),
        (1, "1.0 B"),
        (1023, "1023.0 B"),
        (1024, "1.0 KiB"),
        (1536, "1.5 KiB"),
        (1024 * 1024, "1.0 MiB"),
    ],
)
def test_human(size, want):
    assert text.human(size) == want


def test_get_input_uses_default(capsys):
    text.set_use_color(False)
    assert text.get_input("1 2", False) == "1 2"
    assert capsys.readouterr().out == "==> 1 2\n"


def test_get_input_no_confirm_returns_empty(capsys):
    text.set_use_color(False)
    assert text.get_input("", True) == ""
    assert capsys.readouterr().out == "==> \n"


def test_get_input_reads_stdin(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("^4\nnext\n"))
    assert text.get_input("", False) == "^4"


def test_get_input_overflow(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("x" * 5000 + "\n"))
    with pytest.raises(text.InputOverflowError):
        text.get_input("", False)


def test_get_input_eof(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO(""))
    with pytest.raises(EOFError):
        text.get_input("", False)


def test_input_overflow_message():
    assert str(text.InputOverflowError()) == "input too long"


def test_continue_task_no_confirm():
    assert text.continue_task("Go?", True, True) is True
    assert text.continue_task("Go?", False, True) is False


@pytest.mark.parametrize(
    "answer,cont,want",
    [
        ("y\n", False, True),
        ("YES\n", False, True),
        ("n\n", True, False),
        ("\n", True, True),
        ("\n", False, False),
        ("y y\n", False, False),
        ("", True, True),
    ],
)
def test_continue_task_answers(monkeypatch, capsys, answer, cont, want):
    monkeypatch.setattr("sys.stdin", io.StringIO(answer))
    assert text.continue_task("Import?", cont, False) is want


def test_continue_task_prompt(monkeypatch, capsys):
    text.set_use_color(False)
    monkeypatch.setattr("sys.stdin", io.StringIO("y\n"))
    text.continue_task("Import?", True, False)
    assert capsys.readouterr().out == "==> Import? [Y/n] "


def test_warn_and_error_output(capsys):
    text.set_use_color(False)
    text.warn("careful")
    text.warn("a", "b", newline=False)
    text.error("bad")
    captured = capsys.readouterr()
    assert captured.out == " -> careful\n -> ab"
    assert captured.err == " -> bad\n"


def test_sprint_helpers():
    text.set_use_color(False)
    assert text.sprint_warn("w") == " -> w"
    assert text.sprint_error("e") == " -> e"
    assert text.sprint_operation_info("op") == ":: \x1b[1mop\x1b[0m"


def test_sprint_spaces_between_non_strings():
    text.set_use_color(False)
    assert text.sprint_warn(1, 2, "x", 3) == " -> 1 2x3"


def test_operation_info(capsys):
    text.set_use_color(False)
    text.operation_info("Querying AUR...")
    text.operation_info("x", newline=False)
    assert capsys.readouterr().out == (
        ":: \x1b[1mQuerying AUR...\x1b[0m\n:: \x1b[1mx\x1b[0m"
    )


def test_info_newline(capsys):
    text.set_use_color(False)
    text.info("Total:", "5")
    assert capsys.readouterr().out == "==> Total: 5\n"


def test_print_info_value_none(capsys):
    text.set_use_color(False)
    text.print_info_value("Groups")
    text.print_info_value("URL", "")
    assert capsys.readouterr().out == (
        "Groups          : None\nURL             : None\n"
    )


def test_print_info_value_joins(monkeypatch, capsys):
    text.set_use_color(False)
    monkeypatch.setattr(text, "_cached_column_count", -1)
    monkeypatch.setenv("COLUMNS", "80")
    text.print_info_value("Licenses", "MIT", "GPL")
    assert capsys.readouterr().out == "Licenses        : MIT  GPL\n"


def test_print_info_value_wraps(monkeypatch, capsys):
    text.set_use_color(False)
    monkeypatch.setattr(text, "_cached_column_count", -1)
    monkeypatch.setenv("COLUMNS", "30")
    text.print_info_value("Name", "aaaaa", "bbbbb", "ccccc")
    pad = " " * 18
    assert capsys.readouterr().out == (
        f"Name            : aaaaa\n{pad}bbbbb\n{pad}ccccc\n"
    )


def test_format_time(utc):
    assert text.format_time(1586881830) == "2020-04-14"
    assert text.format_time(0) == "1970-01-01"


def test_format_time_query(utc):
    assert text.format_time_query(1586881830) == "Tue 14 Apr 2020 04:30:30 PM UTC"