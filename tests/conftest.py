"""
Pytest fixtures and configuration for Map Vault tests
"""
import io
import os
import sys
import zipfile
from string import Template

import pytest
from unittest.mock import MagicMock

# Add app directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'app')))


SCENARIO_TEMPLATE = Template("""version = 3 -- Lua Version. Dont touch this
ScenarioInfo = {
    name = "$name",
    description = "<LOC ${internal}_desc>$description",
    preview = '',
    map_version = $version,
    type = 'skirmish',
    starts = true,
    size = {$width, $height},
    reclaim = {0, 0},
    map = '/maps/$folder/$internal.scmap',
    save = '/maps/$folder/${internal}_save.lua',
    script = '/maps/$folder/${internal}_script.lua',
    norushradius = 40.000000,
    Configurations = {
        ['standard'] = {
            teams = {
                {
                    name = 'FFA',
                    armies = {$armies}
                },
            },
            customprops = {
                ['ExtraArmies'] = STRING( 'ARMY_17 NEUTRAL_CIVILIAN' ),
            },
        },
    },
}
""")

SAVE_TEMPLATE = Template("""Scenario = {
    next_area_id = '1',
    Props = {},
    Areas = {},
    -- terrain textures live next to /maps/$folder/$internal.scmap
}
""")

SCRIPT_TEMPLATE = Template("""local ScenarioUtils = import('/lua/sim/ScenarioUtilities.lua')
-- loaded from /maps/$folder/${internal}_script.lua

function OnPopulate()
    ScenarioUtils.InitializeArmies()
end
""")


def scenario_lua(name="My Map", internal="my_map", folder=None, version=7, width=1024, height=1024,
                 players=4, description="A small test map"):
    armies = ", ".join(f"'ARMY_{i}'" for i in range(1, players + 1))
    return SCENARIO_TEMPLATE.substitute(
        name=name,
        internal=internal,
        folder=folder or internal,
        version=version,
        width=width,
        height=height,
        armies=armies,
        description=description,
    )


def map_folder_files(name="My Map", internal="my_map", folder=None, omit=(), replace=None, **scenario_kwargs):
    """Return {relative path: bytes} for a map folder as the map editor exports it."""
    folder = folder or internal
    scenario = scenario_lua(name=name, internal=internal, folder=folder, **scenario_kwargs)
    for old, new in (replace or {}).items():
        scenario = scenario.replace(old, new)
    files = {
        f"{folder}/{internal}.scmap": b"Map\x1a\x02\x00\x00\x00" + bytes(range(64)),
        f"{folder}/{internal}_scenario.lua": scenario.encode("latin-1"),
        f"{folder}/{internal}_save.lua": SAVE_TEMPLATE.substitute(folder=folder, internal=internal).encode("latin-1"),
        f"{folder}/{internal}_script.lua": SCRIPT_TEMPLATE.substitute(folder=folder, internal=internal).encode("latin-1"),
    }
    return {path: data for path, data in files.items() if not any(path.endswith(suffix) for suffix in omit)}


def build_zip(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for path, data in files.items():
            archive.writestr(path, data)
    return buffer.getvalue()


class FakePreviewGenerator:
    """Renders flat images and records the folders it was asked to render"""

    def __init__(self):
        self.calls = []
        self.on_generate = None

    def generate_preview(self, map_folder, width, height):
        from PIL import Image

        self.calls.append((os.path.basename(map_folder), width, height))
        if self.on_generate:
            self.on_generate()
        return Image.new("RGB", (width, height), (0, 128, 0))


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing"""
    logger = MagicMock()
    logger.info = MagicMock()
    logger.error = MagicMock()
    logger.warning = MagicMock()
    logger.debug = MagicMock()
    return logger


@pytest.fixture
def make_map_zip():
    """Factory building an uploadable map archive"""
    def _make(extra_files=None, **kwargs):
        files = map_folder_files(**kwargs)
        files.update(extra_files or {})
        return build_zip(files)
    return _make


@pytest.fixture
def make_map_folder(tmp_path):
    """Factory writing an extracted map folder to disk"""
    def _make(**kwargs):
        files = map_folder_files(**kwargs)
        for path, data in files.items():
            target = tmp_path / path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        folder = next(iter(files)).split("/")[0]
        return tmp_path / folder
    return _make


@pytest.fixture
def map_settings(tmp_path):
    return {
        "final_directory": str(tmp_path / "vault" / "maps"),
        "preview_path_small": str(tmp_path / "vault" / "previews" / "small"),
        "preview_path_large": str(tmp_path / "vault" / "previews" / "large"),
        "preview_size_small": 128,
        "preview_size_large": 512,
        "temp_directory": str(tmp_path / "work"),
        "allowed_extensions": ["zip"],
        "max_upload_size": 10 * 1024 * 1024,
    }


@pytest.fixture
def app(map_settings):
    from app import create_app
    from db import db

    _app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SECRET_KEY": "test-secret-key",
        "APP_SETTINGS": {"map": map_settings},
    })

    with _app.app_context():
        yield _app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def author(app):
    from db import db
    from models import Player

    player = Player(login="Seraphim_Architect")
    db.session.add(player)
    db.session.commit()
    return player


@pytest.fixture
def other_player(app):
    from db import db
    from models import Player

    player = Player(login="Cybran_Copycat")
    db.session.add(player)
    db.session.commit()
    return player


@pytest.fixture
def preview_generator():
    return FakePreviewGenerator()


@pytest.fixture
def map_service(app, map_settings, preview_generator):
    from services.map_service import MapService

    return MapService(map_settings, preview_generator=preview_generator)
