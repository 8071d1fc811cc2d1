# yayhelper

A library of building blocks for an AUR helper on Arch Linux. It covers the
pieces that sit between the user's command line and `pacman`, `makepkg` and
`git`. It is a library only: it has no command of its own.

## Modules

- `yayhelper.parser` – pacman-compatible argument parsing. `Arguments` holds
  one operation, its options (`Option`) and its targets; `Arguments.parse`
  understands short option bundles such as `-Syu`, long options with `=` or a
  following value, targets after `--`, and `-` to read targets from standard
  input. With no words it parses `-Syu`; with no operation it uses `Y`.
  `need_root`, `format_args` and `format_globals` prepare the arguments for
  pacman. Invalid options and a second operation raise `ArgumentError`.
  `TargetMode` (`ANY`, `AUR`, `REPO`) says which sources an operation covers.
- `yayhelper.exe` – `CmdBuilder` builds `git`, `makepkg` and `pacman`
  commands (as `Command` objects) with the configured flags, wraps pacman in
  the privilege elevator when root is needed, drops privileges for git and
  makepkg when running as root, and can keep the sudo timestamp fresh with
  `sudo_loop`. `wait_lock` blocks while pacman's `db.lck` exists. `OSRunner`
  runs commands with `subprocess`.
- `yayhelper.settings` – `Configuration` with its built-in defaults
  (`default_config`), loading from and saving to the JSON config file,
  environment variable expansion, choosing a privilege elevator
  (`sudo`, `doas`, `pkexec`, `su`), and the helper's own command-line options
  (`parse_command_line`, `handle_option`). `new_config` builds the full
  configuration from the defaults, the config file, `AURDEST` and the cache
  directory chosen by `get_cache_home`.
- `yayhelper.query` – `aur_info` looks packages up through an AUR client in
  batches of `split_n` names and records missing, orphaned and out-of-date
  packages in `AURWarnings`. `SourceQueryBuilder` searches the sync databases
  and the AUR, prints the results (`print_repo_search`, `print_aur_search`)
  and turns menu numbers into targets (`get_targets`). `sort_aur_packages`
  orders AUR results by votes, popularity, name, base, submitted, modified,
  id or baseid.
- `yayhelper.upgrade` – `up_aur` finds foreign packages with a newer AUR
  version (or a newer AUR modification time with `time_update`), `up_devel`
  finds development packages whose tracked repositories have new commits.
  `vercmp` compares package versions, `get_version_diff` colours the part of
  two versions that differs, and `UpSlice` sorts and prints a numbered table
  of upgrades.
- `yayhelper.vcs` – `InfoStore` keeps the last seen commit of each package's
  git sources in a JSON file and asks `git ls-remote` whether they changed.
  `parse_source` reads a PKGBUILD source line.
- `yayhelper.news` – `print_news_feed` downloads the Arch Linux news feed with
  a `requests.Session` and prints the items newer than a cut-off date;
  `parse_feed` and `parse_news` turn the RSS and its HTML into terminal text.
- `yayhelper.text` – colours (`set_use_color`, `red`, `bold`, `color_hash`,
  ...), human-readable sizes (`human`), prompts (`get_input`,
  `continue_task`), message lines (`info`, `warn`, `error`,
  `operation_info`), aligned `key: value` output (`print_info_value`) and
  case-aware name ordering (`less_runes`).
- `yayhelper.operations` – splitting targets between the repositories and
  the AUR (`package_slices`), finding dependencies nothing needs any more
  (`hanging_packages`), `statistics`, `sync_search`, and gathering the
  filtered upgrade lists from every source (`up_list`).

## Examples

Parsing a command line:

```python
from yayhelper.parser import Arguments

args = Arguments()
args.parse(["-Syu", "--noconfirm", "firefox"])
args.op                          # "S"
args.exists_arg("y", "refresh")  # True
args.format_globals()            # ["--noconfirm"]
args.targets                     # ["firefox"]
```

Working out which part of two versions differs:

```python
from yayhelper import text
from yayhelper.upgrade import get_version_diff, vercmp

text.set_use_color(False)
get_version_diff("1.2.3-1", "1.2.4-1")  # ("1.2.3-1", "1.2.4-1") without colour
vercmp("1.2.3-1", "1.2.4-1")            # -1
```

Reading a git source line from a PKGBUILD:

```python
from yayhelper.vcs import parse_source

parse_source("git+https://github.com/neovim/neovim.git")
# ("github.com/neovim/neovim.git", "HEAD", ["https"])
```

Human-readable sizes and case-aware name ordering:

```python
from yayhelper.text import human, less_runes

human(1536)              # "1.5 KiB"
less_runes("a", "b")     # True
```

## What you supply

The package does not read the local pacman database itself. Functions that
take a `db_executor` expect an object you provide, with methods such as
`local_packages()`, `local_package(name)`, `sync_package(name)`,
`sync_packages(*names)`, `package_groups(pkg)`, `sync_satisfier_exists(name)`,
`packages_from_group(name)`, `package_provides(pkg)`, `package_depends(pkg)`,
`package_optional_depends(pkg)`, `repo_upgrades(enable_downgrade)` and
`repos()`, returning package objects with attributes like `name`, `version`,
`description`, `db_name`, `size`, `isize`, `reason`, `base`, `build_date` and
`should_ignore`.

Likewise, `SourceQueryBuilder.execute`, `aur_info` and `sync_search` take an
AUR client object with `info(names)` and `search(query, by)` methods returning
`AURPackage` values. `up_list` makes its own AUR RPC requests from the
configuration's AUR URL and HTTP session.

## What it does not do

- There is no command-line program: nothing here installs, builds or removes
  packages, or runs an interactive upgrade menu.
- It does not download PKGBUILDs, parse `.SRCINFO` files or import PGP keys.
- It has no built-in access to pacman's databases (see above).

## Tests

The test suite uses `pytest` and `responses`; both are listed in the `test`
extra.