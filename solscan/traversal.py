"""
Locate Solidity sources (.sol) under project directories.

Foundry, Hardhat and Truffle keep dependencies and compiler output next to the
contracts (lib/, node_modules/, out/, artifacts/ ...); those trees are pruned
so only the project's own sources reach the engine.

    files = find_solidity_files(Path("./contracts"))
    files = collect_targets([Path("src"), Path("script/Deploy.s.sol")])
"""

import logging
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Set

logger = logging.getLogger(__name__)

SOLIDITY_SUFFIX = ".sol"

DEFAULT_IGNORE_DIRS: Set[str] = {
    # installed dependencies
    "node_modules",
    "lib",
    # compiler and tooling output
    "out",
    "artifacts",
    "cache",
    "build",
    "typechain",
    "typechain-types",
    "coverage",
    # vcs
    ".git",
    ".svn",
    ".hg",
    # editors
    ".vscode",
    ".idea",
    # python tooling that ends up in mixed repos
    "venv",
    ".venv",
    "__pycache__",
    ".cache",
    ".pytest_cache",
}


def is_solidity_file(path: Path) -> bool:
    """True for paths with a .sol suffix (case-insensitive)."""
    return path.suffix.lower() == SOLIDITY_SUFFIX


def should_ignore_directory(dir_path: Path, ignore_dirs: Set[str]) -> bool:
    """Match on the directory's own name, so "lib" prunes every lib/ at any depth."""
    return dir_path.name in ignore_dirs


def _iter_sources(root: Path, ignore_dirs: Set[str], follow_symlinks: bool) -> Iterator[Path]:
    pending = [root]
    while pending:
        directory = pending.pop()
        try:
            entries = list(directory.iterdir())
        except OSError as e:
            # PermissionError included: an unreadable subtree is skipped
            logger.warning("Cannot list directory %s: %s", directory, e)
            continue

        for entry in entries:
            if entry.is_symlink() and not follow_symlinks:
                logger.debug("Skipping symlink: %s", entry)
            elif entry.is_dir():
                if should_ignore_directory(entry, ignore_dirs):
                    logger.debug("Pruned directory: %s", entry)
                else:
                    pending.append(entry)
            elif entry.is_file() and is_solidity_file(entry):
                yield entry


def find_solidity_files(
    root: Path,
    ignore_dirs: Optional[Set[str]] = None,
    follow_symlinks: bool = False,
    filter_fn: Optional[Callable[[Path], bool]] = None,
) -> list[Path]:
    """
    Return every .sol file below root as sorted absolute paths.

    Args:
        root: Project or contracts directory.
        ignore_dirs: Directory names to prune; DEFAULT_IGNORE_DIRS when None.
        follow_symlinks: Descend into symlinked directories and files.
        filter_fn: Extra predicate a file must satisfy to be kept.

    Raises:
        FileNotFoundError: root does not exist.
        NotADirectoryError: root is a file.
    """
    ignore = DEFAULT_IGNORE_DIRS if ignore_dirs is None else ignore_dirs
    root = root.resolve()

    if not root.exists():
        raise FileNotFoundError(f"Root directory does not exist: {root}")
    if not root.is_dir():
        raise NotADirectoryError(f"Root path is not a directory: {root}")

    logger.debug("Searching %s (follow_symlinks=%s, ignore=%s)", root, follow_symlinks, sorted(ignore))
    found = sorted(
        path for path in _iter_sources(root, ignore, follow_symlinks) if filter_fn is None or filter_fn(path)
    )
    logger.info("Traversal complete: found %d source file(s) in %s", len(found), root)
    return found


def collect_targets(targets: Iterable[Path], ignore_dirs: Optional[Set[str]] = None) -> list[Path]:
    """
    Expand CLI targets into a de-duplicated, sorted list of files.

    Explicit files are kept whatever their extension; directories are
    searched with find_solidity_files().
    """
    seen: set[Path] = set()
    for target in targets:
        if target.is_file():
            seen.add(target.resolve())
        elif target.is_dir():
            seen.update(find_solidity_files(target, ignore_dirs=ignore_dirs))
        else:
            raise FileNotFoundError(f"Target path is neither a file nor a directory: {target}")
    return sorted(seen)
