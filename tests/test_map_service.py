"""
Tests for the map upload pipeline
"""
import dataclasses
import os
import zipfile
from pathlib import Path

import pytest
from PIL import Image

from db import db
from exceptions import (
    InvalidArchive,
    InvalidMapName,
    MapNameConflict,
    MultipleContentFolders,
    NotOriginalAuthor,
    RequiredFileMissing,
    ScenarioValueInvalid,
    VersionAlreadyExists,
)
from models import Map, MapVersion
from repositories.map_repository import MapRepository
from scenario import load_scenario
from services.map_service import MapData, MapUpload, UploadStage


def archive_entries(path):
    with zipfile.ZipFile(path) as archive:
        return {name: archive.read(name) for name in archive.namelist() if not name.endswith("/")}


class TestMapData:
    """Tests for the values derived from a scenario"""

    def test_from_scenario(self, make_map_folder):
        """Test display name, sizes, players and canonical names"""
        scenario = load_scenario(make_map_folder(width=1320, height=660, players=6))
        map_data = MapData.from_scenario(scenario)

        assert map_data.display_name == "My Map"
        assert map_data.map_type == "skirmish"
        assert map_data.battle_type == "FFA"
        assert map_data.version.version == 7
        assert map_data.version.width == 25
        assert map_data.version.height == 12
        assert map_data.version.max_players == 6
        assert map_data.version.description == "A small test map"
        assert map_data.version.filename == "my_map.v0007.zip"
        assert map_data.map_name == "my_map"
        assert map_data.folder_name == "my_map.v0007"

    def test_records_are_frozen(self, make_map_folder):
        """Test derived records cannot be changed after parsing"""
        map_data = MapData.from_scenario(load_scenario(make_map_folder()))
        with pytest.raises(dataclasses.FrozenInstanceError):
            map_data.display_name = "Other"

    def test_invalid_version(self, make_map_folder):
        """Test a non numeric map_version"""
        scenario = load_scenario(make_map_folder(replace={"map_version = 7": "map_version = 'seven'"}))
        with pytest.raises(ScenarioValueInvalid) as excinfo:
            MapData.from_scenario(scenario)
        assert excinfo.value.arguments == ("map_version",)

    def test_missing_team_configuration(self, make_map_folder):
        """Test a scenario without standard teams"""
        scenario = load_scenario(make_map_folder(replace={"['standard']": "['custom']"}))
        with pytest.raises(ScenarioValueInvalid) as excinfo:
            MapData.from_scenario(scenario)
        assert excinfo.value.arguments == ("Configurations.standard.teams.1",)


class TestMapUpload:
    """Tests for stage bookkeeping"""

    def test_stages_advance_in_order(self, tmp_path):
        """Test each stage follows the previous one"""
        upload = MapUpload(filename="my_map.zip", author=None, base_dir=tmp_path)
        upload.advance(UploadStage.EXTRACTED)
        upload.advance(UploadStage.VALIDATED)
        assert upload.stage == UploadStage.VALIDATED

    def test_stages_cannot_be_skipped(self, tmp_path):
        """Test jumping ahead is refused"""
        upload = MapUpload(filename="my_map.zip", author=None, base_dir=tmp_path)
        with pytest.raises(RuntimeError):
            upload.advance(UploadStage.PERSISTED)


class TestUploadMap:
    """Tests for publishing uploaded archives"""

    def test_new_map(self, map_service, map_settings, make_map_zip, author, preview_generator):
        """Test a first upload creates the map, the archive and both previews"""
        version = map_service.upload_map(make_map_zip(), "my_map.zip", author)

        assert version.id is not None
        assert version.filename == "my_map.v0007.zip"
        assert version.version == 7
        assert (version.width, version.height) == (20, 20)
        assert version.max_players == 4
        assert version.description == "A small test map"
        assert version.hidden is False and version.ranked is False
        assert version.map.display_name == "My Map"
        assert version.map.author_id == author.id
        assert version.map.map_type == "skirmish"
        assert version.map.battle_type == "FFA"

        destination = Path(map_settings["final_directory"]) / "my_map.v0007.zip"
        entries = archive_entries(destination)
        assert set(entries) == {
            "my_map.v0007/my_map.scmap",
            "my_map.v0007/my_map_save.lua",
            "my_map.v0007/my_map_scenario.lua",
            "my_map.v0007/my_map_script.lua",
        }
        assert b"map = '/maps/my_map.v0007/my_map.scmap'" in entries["my_map.v0007/my_map_scenario.lua"]

        with Image.open(Path(map_settings["preview_path_small"]) / "my_map.png") as small:
            assert small.size == (128, 128)
        with Image.open(Path(map_settings["preview_path_large"]) / "my_map.png") as large:
            assert large.size == (512, 512)
        assert [call[1] for call in preview_generator.calls] == [128, 512]

    def test_upload_is_committed(self, map_service, make_map_zip, author):
        """Test the new rows survive the end of the session"""
        map_service.upload_map(make_map_zip(), "my_map.zip", author)
        db.session.remove()
        stored = MapRepository.find_one_by_display_name("My Map")
        assert [v.filename for v in stored.versions] == ["my_map.v0007.zip"]

    def test_internal_name_is_replaced(self, map_service, map_settings, make_map_zip, author):
        """Test files and references named after the editor's name are renamed"""
        data = make_map_zip(internal="Old_Name", folder="Old Folder")
        map_service.upload_map(data, "upload.zip", author)

        entries = archive_entries(Path(map_settings["final_directory"]) / "my_map.v0007.zip")
        assert sorted(entries) == [
            "my_map.v0007/my_map.scmap",
            "my_map.v0007/my_map_save.lua",
            "my_map.v0007/my_map_scenario.lua",
            "my_map.v0007/my_map_script.lua",
        ]
        for name, content in entries.items():
            if name.endswith(".lua"):
                text = content.decode("latin-1").lower()
                assert "/maps/old folder" not in text
                assert "/old_name" not in text
        scenario = entries["my_map.v0007/my_map_scenario.lua"].decode("latin-1")
        assert "script = '/maps/my_map.v0007/my_map_script.lua'" in scenario

    @pytest.mark.parametrize("folder", ["previews", "my_map.zip"])
    def test_folder_name_does_not_clash_with_workspace(
        self, map_service, map_settings, make_map_zip, author, folder
    ):
        """Test content folders named like workspace entries are published normally"""
        version = map_service.upload_map(make_map_zip(folder=folder), "my_map.zip", author)

        assert version.filename == "my_map.v0007.zip"
        entries = archive_entries(Path(map_settings["final_directory"]) / "my_map.v0007.zip")
        assert "my_map.v0007/my_map_scenario.lua" in entries

    def test_new_version_of_own_map(self, map_service, map_settings, make_map_zip, author):
        """Test the original author can add versions"""
        first = map_service.upload_map(make_map_zip(version=7), "my_map.zip", author)
        second = map_service.upload_map(make_map_zip(version=8), "my_map.zip", author)

        assert second.map_id == first.map_id
        assert Map.query.count() == 1
        assert [v.version for v in Map.query.one().versions] == [7, 8]
        assert (Path(map_settings["final_directory"]) / "my_map.v0008.zip").is_file()

    def test_version_already_exists(self, map_service, map_settings, make_map_zip, author):
        """Test the same version cannot be published twice"""
        map_service.upload_map(make_map_zip(), "my_map.zip", author)
        with pytest.raises(VersionAlreadyExists) as excinfo:
            map_service.upload_map(make_map_zip(description="changed"), "my_map.zip", author)

        assert excinfo.value.arguments == ("My Map", 7)
        assert MapVersion.query.count() == 1
        assert os.listdir(map_settings["final_directory"]) == ["my_map.v0007.zip"]

    def test_not_original_author(self, map_service, map_settings, make_map_zip, author, other_player):
        """Test another player cannot add versions to someone else's map"""
        map_service.upload_map(make_map_zip(version=7), "my_map.zip", author)
        with pytest.raises(NotOriginalAuthor) as excinfo:
            map_service.upload_map(make_map_zip(version=8), "my_map.zip", other_player)

        assert excinfo.value.status_code == 409
        assert MapVersion.query.count() == 1
        assert not (Path(map_settings["final_directory"]) / "my_map.v0008.zip").exists()

    def test_existing_file_is_never_overwritten(self, map_service, map_settings, make_map_zip, author):
        """Test an existing archive of the same name stops the upload"""
        destination = Path(map_settings["final_directory"]) / "my_map.v0007.zip"
        destination.parent.mkdir(parents=True)
        destination.write_bytes(b"published elsewhere")

        with pytest.raises(MapNameConflict) as excinfo:
            map_service.upload_map(make_map_zip(), "my_map.zip", author)

        assert excinfo.value.arguments == ("my_map.v0007.zip",)
        assert destination.read_bytes() == b"published elsewhere"
        assert Map.query.count() == 0

    def test_file_created_during_upload(
        self, map_service, map_settings, make_map_zip, author, preview_generator
    ):
        """Test an archive appearing after resolution is still not overwritten"""
        destination = Path(map_settings["final_directory"]) / "my_map.v0007.zip"

        def competing_upload():
            destination.parent.mkdir(parents=True, exist_ok=True)
            if not destination.exists():
                destination.write_bytes(b"other upload")

        preview_generator.on_generate = competing_upload

        with pytest.raises(MapNameConflict):
            map_service.upload_map(make_map_zip(), "my_map.zip", author)

        assert destination.read_bytes() == b"other upload"
        assert Map.query.count() == 0
        assert not (Path(map_settings["preview_path_small"]) / "my_map.png").exists()

    def test_concurrent_first_upload_by_other_author(
        self, map_service, make_map_zip, author, other_player, monkeypatch
    ):
        """Test a unique constraint violation is reported as the matching conflict"""
        map_service.upload_map(make_map_zip(version=7), "my_map.zip", other_player)

        real_lookup = MapRepository.find_one_by_display_name
        lookups = []

        def stale_lookup(display_name):
            lookups.append(display_name)
            # The first lookup runs before the other upload became visible
            if len(lookups) == 1:
                return None
            return real_lookup(display_name)

        monkeypatch.setattr(MapRepository, "find_one_by_display_name", stale_lookup)

        with pytest.raises(NotOriginalAuthor):
            map_service.upload_map(make_map_zip(version=8), "my_map.zip", author)

        assert len(lookups) == 2
        assert MapVersion.query.count() == 1

    def test_concurrent_first_upload_by_same_author(
        self, map_service, map_settings, make_map_zip, author, monkeypatch
    ):
        """Test a version racing the creation of its own map is added to that map"""
        first = map_service.upload_map(make_map_zip(version=7), "my_map.zip", author)

        real_lookup = MapRepository.find_one_by_display_name
        lookups = []

        def stale_lookup(display_name):
            lookups.append(display_name)
            if len(lookups) == 1:
                return None
            return real_lookup(display_name)

        monkeypatch.setattr(MapRepository, "find_one_by_display_name", stale_lookup)

        second = map_service.upload_map(make_map_zip(version=8), "my_map.zip", author)

        assert len(lookups) == 2
        assert second.map_id == first.map_id
        assert Map.query.count() == 1
        assert sorted(v.version for v in Map.query.one().versions) == [7, 8]
        assert (Path(map_settings["final_directory"]) / "my_map.v0008.zip").is_file()

    def test_failure_after_placement_is_rolled_back(
        self, map_service, map_settings, make_map_zip, author, monkeypatch
    ):
        """Test a failing commit removes the placed archive and previews"""
        def failing_commit():
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(db.session, "commit", failing_commit)

        with pytest.raises(RuntimeError):
            map_service.upload_map(make_map_zip(), "my_map.zip", author)
        monkeypatch.undo()

        assert not (Path(map_settings["final_directory"]) / "my_map.v0007.zip").exists()
        assert not (Path(map_settings["preview_path_small"]) / "my_map.png").exists()
        assert not (Path(map_settings["preview_path_large"]) / "my_map.png").exists()
        assert Map.query.count() == 0

    def test_rollback_restores_replaced_preview(
        self, map_service, map_settings, make_map_zip, author, monkeypatch
    ):
        """Test a failed upload puts back the preview it replaced"""
        map_service.upload_map(make_map_zip(version=7), "my_map.zip", author)
        small_preview = Path(map_settings["preview_path_small"]) / "my_map.png"
        published = small_preview.read_bytes()

        def failing_commit():
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(db.session, "commit", failing_commit)
        with pytest.raises(RuntimeError):
            map_service.upload_map(make_map_zip(version=8), "my_map.zip", author)
        monkeypatch.undo()

        assert small_preview.read_bytes() == published
        assert not (Path(map_settings["final_directory"]) / "my_map.v0008.zip").exists()
        assert MapVersion.query.count() == 1

    def test_missing_file_persists_nothing(self, map_service, map_settings, make_map_zip, author):
        """Test an archive without a script file"""
        with pytest.raises(RequiredFileMissing) as excinfo:
            map_service.upload_map(make_map_zip(omit=("_script.lua",)), "my_map.zip", author)

        assert excinfo.value.suffix == "_script.lua"
        assert Map.query.count() == 0
        assert not Path(map_settings["final_directory"]).exists()

    def test_reserved_internal_name(self, map_service, make_map_zip, author):
        """Test a map the editor named after a reserved word"""
        with pytest.raises(InvalidMapName):
            map_service.upload_map(make_map_zip(internal="script", folder="my_map"), "my_map.zip", author)
        assert Map.query.count() == 0

    @pytest.mark.parametrize("outcome", ["success", "failure"])
    def test_workspace_is_always_removed(self, map_service, map_settings, make_map_zip, author, outcome):
        """Test no temporary files remain after an upload"""
        if outcome == "success":
            map_service.upload_map(make_map_zip(), "my_map.zip", author)
        else:
            with pytest.raises(MultipleContentFolders):
                data = make_map_zip(extra_files={"second/readme.txt": b"x"})
                map_service.upload_map(data, "my_map.zip", author)

        assert os.listdir(map_settings["temp_directory"]) == []

    def test_invalid_archive(self, map_service, map_settings, author):
        """Test bytes that are not a zip archive"""
        with pytest.raises(InvalidArchive):
            map_service.upload_map(b"\x00\x01garbage", "my_map.zip", author)
        assert os.listdir(map_settings["temp_directory"]) == []
