"""
Map Service - upload pipeline for community maps

An upload moves through a fixed sequence of stages. Database changes are
flushed (PERSISTED) before any file of the upload is renamed, and committed
only once the final archive is in place (COMMITTED). A failure at any stage
rolls the session back and removes whatever the upload already placed in the
output directories; the temporary workspace is always deleted.
"""

import enum
import os
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.exc import IntegrityError

from archive import PREVIEW_DIRECTORY, extract_map_archive, pack_folder, upload_workspace
from constants import MAP_ARCHIVE_EXTENSION, MAP_SIZE_FACTOR
from db import db
from exceptions import ApiException, MapNameConflict, NotOriginalAuthor, VersionAlreadyExists
from map_naming import (
    InternalMapName,
    folder_name_from_filename,
    generate_map_filename,
    normalize_map_name,
    parse_internal_name,
)
from map_rewriter import canonicalize_map_folder
from map_validation import validate_required_files
from metrics import ACTIVE_UPLOADS, MAP_UPLOADS, MAP_UPLOAD_DURATION
from preview import PreviewGenerator, write_preview
from repositories.map_repository import MapRepository
from scenario import ScenarioInfo, clean_description, load_scenario
from utils import format_size_py, sanitize_filename

logger = structlog.get_logger("map_service")


@dataclass(frozen=True)
class MapVersionData:
    description: str
    width: int
    height: int
    max_players: int
    version: int
    filename: str
    hidden: bool = False
    ranked: bool = False


@dataclass(frozen=True)
class MapData:
    display_name: str
    map_type: str
    battle_type: str
    version: MapVersionData

    @property
    def map_name(self) -> str:
        """Canonical file stem, e.g. my_map"""
        return normalize_map_name(self.display_name)

    @property
    def folder_name(self) -> str:
        """Canonical folder name, e.g. my_map.v0007"""
        return folder_name_from_filename(self.version.filename)

    @classmethod
    def from_scenario(cls, scenario: ScenarioInfo, extension: str = MAP_ARCHIVE_EXTENSION) -> "MapData":
        display_name = scenario.string("name")
        version_number = scenario.integer("map_version")
        team = scenario.table("Configurations", "standard", "teams", 1)
        version = MapVersionData(
            description=clean_description(scenario.string("description")),
            width=int(scenario.integer("size", 1) / MAP_SIZE_FACTOR),
            height=int(scenario.integer("size", 2) / MAP_SIZE_FACTOR),
            max_players=team.length("armies"),
            version=version_number,
            filename=generate_map_filename(display_name, version_number, extension),
        )
        return cls(
            display_name=display_name,
            map_type=scenario.string("type"),
            battle_type=team.string("name"),
            version=version,
        )


class UploadStage(enum.IntEnum):
    RECEIVED = 0
    EXTRACTED = 1
    VALIDATED = 2
    PARSED = 3
    RESOLVED = 4
    PERSISTED = 5
    PREVIEWED = 6
    RECONCILED = 7
    PLACED = 8
    COMMITTED = 9


@dataclass
class MapUpload:
    """State of a single upload as it moves through the pipeline."""

    filename: str
    author: Any
    base_dir: Path
    stage: UploadStage = UploadStage.RECEIVED
    content_folder: Optional[Path] = None
    scenario: Optional[ScenarioInfo] = None
    internal_name: Optional[InternalMapName] = None
    map_data: Optional[MapData] = None
    existing_map: Any = None
    destination: Optional[Path] = None
    version: Any = None
    rendered_previews: Dict[str, Path] = field(default_factory=dict)
    placed_files: List[Path] = field(default_factory=list)
    replaced_files: Dict[Path, bytes] = field(default_factory=dict)

    def advance(self, stage: UploadStage):
        if stage != self.stage + 1:
            raise RuntimeError(f"Upload cannot move from {self.stage.name} to {stage.name}")
        self.stage = stage
        logger.debug("map_upload_stage", upload=self.filename, stage=stage.name)


class MapService:
    """Runs map uploads against the configured output directories"""

    def __init__(self, map_settings: Dict[str, Any], preview_generator: Optional[PreviewGenerator] = None):
        self.final_directory = Path(map_settings["final_directory"])
        self.temp_directory = map_settings.get("temp_directory")
        self.previews = {
            "small": (Path(map_settings["preview_path_small"]), int(map_settings["preview_size_small"])),
            "large": (Path(map_settings["preview_path_large"]), int(map_settings["preview_size_large"])),
        }
        self.preview_generator = preview_generator or PreviewGenerator()

    def upload_map(self, map_data: bytes, map_filename: str, author):
        """
        Publish an uploaded map archive for the given author and return the
        new MapVersion. Raises an ApiException describing the first failure.
        """
        started = time.monotonic()
        log = logger.bind(upload=map_filename, author_id=getattr(author, "id", None))
        log.info("map_upload_started", size=format_size_py(len(map_data)))

        ACTIVE_UPLOADS.inc()
        try:
            with upload_workspace(self.temp_directory) as base_dir:
                upload = MapUpload(filename=map_filename, author=author, base_dir=base_dir)
                try:
                    self._run(upload, map_data)
                except BaseException:
                    self._compensate(upload)
                    raise
        except ApiException as e:
            MAP_UPLOADS.labels(status=e.code).inc()
            log.warning("map_upload_failed", code=e.code, arguments=list(e.arguments))
            raise
        except Exception:
            MAP_UPLOADS.labels(status="error").inc()
            log.error("map_upload_crashed", exc_info=True)
            raise
        finally:
            ACTIVE_UPLOADS.dec()
            MAP_UPLOAD_DURATION.observe(time.monotonic() - started)

        MAP_UPLOADS.labels(status="success").inc()
        log.info("map_upload_completed", filename=upload.version.filename, map_id=upload.version.map_id)
        return upload.version

    def _run(self, upload: MapUpload, data: bytes):
        upload.content_folder = extract_map_archive(data, upload.filename, upload.base_dir)
        upload.advance(UploadStage.EXTRACTED)

        validate_required_files(upload.content_folder)
        upload.advance(UploadStage.VALIDATED)

        upload.scenario = load_scenario(upload.content_folder)
        upload.advance(UploadStage.PARSED)

        self._resolve(upload)
        upload.advance(UploadStage.RESOLVED)

        upload.version = self._persist(upload)
        upload.advance(UploadStage.PERSISTED)

        self._render_previews(upload)
        upload.advance(UploadStage.PREVIEWED)

        upload.content_folder = canonicalize_map_folder(
            upload.content_folder,
            upload.internal_name,
            upload.map_data.folder_name,
            upload.map_data.map_name,
        )
        upload.advance(UploadStage.RECONCILED)

        self._place(upload)
        upload.advance(UploadStage.PLACED)

        db.session.commit()
        upload.advance(UploadStage.COMMITTED)

    def _resolve(self, upload: MapUpload):
        upload.internal_name = parse_internal_name(upload.scenario.string("map"))
        map_data = MapData.from_scenario(upload.scenario)
        upload.existing_map = self._check_existing(map_data, upload.author)

        destination = self.final_directory / map_data.version.filename
        if destination.exists():
            raise MapNameConflict(map_data.version.filename)

        upload.map_data = map_data
        upload.destination = destination

    @staticmethod
    def _check_existing(map_data: MapData, author):
        existing = MapRepository.find_one_by_display_name(map_data.display_name)
        if existing is None:
            return None
        if existing.author_id != author.id:
            raise NotOriginalAuthor(existing.display_name)
        if any(version.version == map_data.version.version for version in existing.versions):
            raise VersionAlreadyExists(existing.display_name, map_data.version.version)
        return existing

    def _persist(self, upload: MapUpload):
        try:
            return MapRepository.add_version(upload.existing_map, upload.map_data, upload.author)
        except IntegrityError:
            # Another upload committed first; check against what it stored
            db.session.rollback()
            existing = self._check_existing(upload.map_data, upload.author)
            if existing is None or upload.existing_map is not None:
                raise MapNameConflict(upload.map_data.version.filename)
            # Same author created the map meanwhile: add this version to it
            logger.info("map_upload_reattached", upload=upload.filename, map_id=existing.id)
            upload.existing_map = existing
            return self._persist(upload)

    def _render_previews(self, upload: MapUpload):
        preview_dir = upload.base_dir / PREVIEW_DIRECTORY
        preview_dir.mkdir()
        for label, (_, size) in self.previews.items():
            image = self.preview_generator.generate_preview(upload.content_folder, size, size)
            upload.rendered_previews[label] = write_preview(image, preview_dir / f"{label}.png")

    def _place(self, upload: MapUpload):
        self.final_directory.mkdir(parents=True, exist_ok=True)
        try:
            pack_folder(upload.content_folder, upload.destination)
        except FileExistsError:
            raise MapNameConflict(upload.map_data.version.filename)
        upload.placed_files.append(upload.destination)

        upload_stem = sanitize_filename(Path(os.path.basename(upload.filename)).stem)
        preview_name = (upload_stem or upload.map_data.folder_name) + ".png"
        for label, rendered in upload.rendered_previews.items():
            directory, _ = self.previews[label]
            directory.mkdir(parents=True, exist_ok=True)
            target = directory / preview_name
            if target.exists():
                # Previews are keyed by upload name; keep the previous one for rollback
                upload.replaced_files[target] = target.read_bytes()
            shutil.copyfile(rendered, target)
            upload.placed_files.append(target)

    @staticmethod
    def _compensate(upload: MapUpload):
        db.session.rollback()
        for path in reversed(upload.placed_files):
            try:
                if path in upload.replaced_files:
                    path.write_bytes(upload.replaced_files[path])
                else:
                    os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error("map_upload_cleanup_failed", path=str(path), error=str(e))
        if upload.stage >= UploadStage.PERSISTED:
            logger.info("map_upload_rolled_back", upload=upload.filename, stage=upload.stage.name)
