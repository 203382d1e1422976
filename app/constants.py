import os

APP_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.path.join(APP_DIR, 'data')
CONFIG_DIR = os.path.join(APP_DIR, 'config')
DB_FILE = os.path.join(CONFIG_DIR, 'mapvault.db')
CONFIG_FILE = os.path.join(CONFIG_DIR, 'settings.yaml')

MAPVAULT_DB = 'sqlite:///' + DB_FILE

BUILD_VERSION = '20261016_0900'

# Raw scenario sizes are stored in internal units, published sizes in km
MAP_SIZE_FACTOR = 51.2

REQUIRED_MAP_FILES = [
    '.scmap',
    '_save.lua',
    '_scenario.lua',
    '_script.lua',
]

SCENARIO_FILE_SUFFIX = '_scenario.lua'

INVALID_MAP_NAMES = [
    'save',
    'script',
    'map',
    'tables',
]

MAP_CHARSET = 'latin-1'

# Never rewritten as text; other files are, unless they contain NUL bytes
MAP_BINARY_FILE_SUFFIXES = [
    '.scmap',
    '.dds',
    '.png',
    '.jpg',
    '.jpeg',
    '.bmp',
    '.tga',
    '.xwb',
    '.xsb',
    '.ogg',
    '.wav',
    '.zip',
]

MAP_ARCHIVE_EXTENSION = 'zip'

DEFAULT_SETTINGS = {
    "map": {
        "final_directory": os.path.join(DATA_DIR, 'maps'),
        "preview_path_small": os.path.join(DATA_DIR, 'map_previews', 'small'),
        "preview_path_large": os.path.join(DATA_DIR, 'map_previews', 'large'),
        "preview_size_small": 128,
        "preview_size_large": 512,
        "temp_directory": None,
        "allowed_extensions": ['zip'],
        "max_upload_size": 256 * 1024 * 1024,
    },
}
