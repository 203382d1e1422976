"""
Archive handling for map uploads: temporary workspace, extraction and repacking.
"""
import os
import shutil
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path

import structlog

from exceptions import InvalidArchive, MissingContentFolder, MultipleContentFolders
from utils import sanitize_filename

logger = structlog.get_logger("archive")

# Resource fork folders added by the macOS archiver
IGNORED_FOLDERS = {"__MACOSX"}

# Subdirectories of an upload workspace
UPLOAD_DIRECTORY = "upload"
EXTRACT_DIRECTORY = "content"
PREVIEW_DIRECTORY = "previews"


@contextmanager
def upload_workspace(temp_directory=None):
    """Create a private temporary directory and remove it when the block exits."""
    if temp_directory:
        os.makedirs(temp_directory, exist_ok=True)
    base_dir = Path(tempfile.mkdtemp(prefix="map_upload_", dir=temp_directory))
    try:
        yield base_dir
    finally:
        shutil.rmtree(base_dir, ignore_errors=True)
        if base_dir.exists():
            logger.error("workspace_cleanup_failed", path=str(base_dir))


def _check_members(archive: zipfile.ZipFile, base_dir: Path, filename: str):
    root = base_dir.resolve()
    for member in archive.infolist():
        target = (root / member.filename).resolve()
        if target != root and root not in target.parents:
            logger.warning("zip_member_outside_workspace", member=member.filename, upload=filename)
            raise InvalidArchive(filename)


def find_content_folder(base_dir) -> Path:
    folders = sorted(
        path for path in Path(base_dir).iterdir()
        if path.is_dir() and path.name not in IGNORED_FOLDERS
    )
    if not folders:
        raise MissingContentFolder()
    if len(folders) > 1:
        raise MultipleContentFolders([folder.name for folder in folders])
    return folders[0]


def extract_map_archive(data: bytes, filename: str, base_dir) -> Path:
    """
    Write the uploaded bytes into the workspace, unpack them into a directory
    of their own and return the single top-level content folder.
    """
    base_dir = Path(base_dir)
    upload_name = sanitize_filename(os.path.basename(filename)) or "upload.zip"
    upload_dir = base_dir / UPLOAD_DIRECTORY
    upload_dir.mkdir()
    upload_path = upload_dir / upload_name
    upload_path.write_bytes(data)
    extract_dir = base_dir / EXTRACT_DIRECTORY
    extract_dir.mkdir()

    try:
        with zipfile.ZipFile(upload_path) as archive:
            _check_members(archive, extract_dir, upload_name)
            archive.extractall(extract_dir)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, NotImplementedError, RuntimeError) as e:
        logger.warning("zip_extraction_failed", upload=upload_name, error=str(e))
        raise InvalidArchive(upload_name) from e

    logger.debug("zip_extracted", upload=upload_name, workspace=str(base_dir))
    return find_content_folder(extract_dir)


def pack_folder(folder, destination):
    """
    Zip a folder into destination, keeping the folder name as the archive's
    top-level entry. The destination is created exclusively, so an existing
    file raises FileExistsError and is never overwritten.
    """
    folder = Path(folder)
    destination = Path(destination)
    with open(destination, "xb") as output:
        try:
            with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as archive:
                archive.write(folder, folder.name)
                for path in sorted(folder.rglob("*")):
                    archive.write(path, path.relative_to(folder.parent).as_posix())
        except BaseException:
            output.close()
            destination.unlink()
            raise
    return destination
