from pathlib import Path

from constants import REQUIRED_MAP_FILES
from exceptions import RequiredFileMissing


def validate_required_files(folder, required_suffixes=REQUIRED_MAP_FILES):
    """Ensure the map folder holds a file ending with each required suffix."""
    filenames = [path.name for path in Path(folder).iterdir() if path.is_file()]
    for suffix in required_suffixes:
        if not any(name.endswith(suffix) for name in filenames):
            raise RequiredFileMissing(suffix)
