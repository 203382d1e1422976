"""
Brings an extracted map folder in line with its canonical name: file names,
path references inside its text files and the folder name itself.
"""
import os
import re
from pathlib import Path

import structlog

from constants import MAP_BINARY_FILE_SUFFIXES, MAP_CHARSET
from exceptions import RenameFailed
from map_naming import InternalMapName

logger = structlog.get_logger("map_rewriter")

# A name ends where a reference would stop matching it
NAME_BOUNDARY = r"(?![A-Za-z0-9])"


def _renamed(filename: str, old_name: str, new_name: str):
    if not re.match(re.escape(old_name) + NAME_BOUNDARY, filename, re.IGNORECASE):
        return None
    return new_name + filename[len(old_name):]


def _move(source: Path, target: Path):
    if target.exists() and not _same_file(source, target):
        logger.error("rename_target_exists", source=source.name, target=target.name)
        raise RenameFailed(source.name)
    try:
        os.rename(source, target)
    except OSError as e:
        logger.error("rename_failed", source=source.name, target=target.name, error=str(e))
        raise RenameFailed(source.name) from e


def _same_file(source: Path, target: Path):
    try:
        return os.path.samefile(source, target)
    except OSError:
        return False


def rename_map_files(folder, old_name: str, new_name: str):
    """
    Rename every file and subfolder named after the internal map name, keeping
    whatever follows it (Old_save.lua -> new_save.lua, Old_tables.lua ->
    new_tables.lua). Deepest entries are renamed first.
    """
    entries = sorted(Path(folder).rglob("*"), key=lambda path: (-len(path.parts), str(path)))
    renamed = []
    for path in entries:
        target_name = _renamed(path.name, old_name, new_name)
        if target_name is None or target_name == path.name:
            continue
        _move(path, path.with_name(target_name))
        renamed.append(target_name)
    return renamed


def reference_pattern(internal: InternalMapName):
    # Folder references are matched first so '/maps/<folder>' is never
    # rewritten as a bare name reference.
    return re.compile(
        r"(?P<folder>/maps/%s)%s|(?P<name>/%s)%s"
        % (re.escape(internal.folder), NAME_BOUNDARY, re.escape(internal.name), NAME_BOUNDARY),
        re.IGNORECASE,
    )


def is_text_file(path: Path, content: bytes):
    if path.suffix.lower() in MAP_BINARY_FILE_SUFFIXES:
        return False
    return b"\x00" not in content


def rewrite_references(folder, internal: InternalMapName, new_folder: str, new_name: str):
    """Replace /maps/<old folder> and /<old name> in every text file of the folder."""
    pattern = reference_pattern(internal)

    def replace(match):
        if match.group("folder"):
            return "/maps/" + new_folder
        return "/" + new_name

    rewritten = []
    for path in sorted(Path(folder).rglob("*")):
        if not path.is_file():
            continue
        raw = path.read_bytes()
        if not is_text_file(path, raw):
            continue
        content = raw.decode(MAP_CHARSET)
        updated = pattern.sub(replace, content)
        if updated != content:
            path.write_bytes(updated.encode(MAP_CHARSET))
            rewritten.append(path.name)
    return rewritten


def rename_folder(folder, new_folder_name: str) -> Path:
    folder = Path(folder)
    target = folder.with_name(new_folder_name)
    if target == folder:
        return folder
    _move(folder, target)
    return target


def canonicalize_map_folder(folder, internal: InternalMapName, new_folder: str, new_name: str) -> Path:
    """
    Rename files, rewrite references, then rename the folder itself, in that
    order so the folder path stays valid while its contents are changed.
    Returns the new folder path.
    """
    folder = Path(folder)
    if internal.folder == new_folder and internal.name == new_name and folder.name == new_folder:
        return folder

    renamed = rename_map_files(folder, internal.name, new_name)
    rewritten = rewrite_references(folder, internal, new_folder, new_name)
    new_path = rename_folder(folder, new_folder)
    logger.info(
        "map_folder_canonicalized",
        old_name=internal.name,
        new_folder=new_folder,
        renamed=len(renamed),
        rewritten=len(rewritten),
    )
    return new_path
