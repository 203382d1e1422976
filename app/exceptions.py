"""
Map Vault - Custom Exceptions and Exception Handlers

Every failure of a map upload is an ApiException carrying a stable error code
and the positional arguments used to render its detail message.
"""
import structlog
from werkzeug.exceptions import HTTPException

from api_responses import error_response

logger = structlog.get_logger('exceptions')


class ErrorCode:
    MAP_MISSING_MAP_FOLDER_INSIDE_ZIP = "MAP_MISSING_MAP_FOLDER_INSIDE_ZIP"
    MAP_MULTIPLE_MAP_FOLDERS_INSIDE_ZIP = "MAP_MULTIPLE_MAP_FOLDERS_INSIDE_ZIP"
    MAP_INVALID_ZIP = "MAP_INVALID_ZIP"
    MAP_FILE_INSIDE_ZIP_MISSING = "MAP_FILE_INSIDE_ZIP_MISSING"
    MAP_SCENARIO_LUA_MISSING = "MAP_SCENARIO_LUA_MISSING"
    MAP_SCENARIO_LUA_INVALID_VALUE = "MAP_SCENARIO_LUA_INVALID_VALUE"
    MAP_NO_VALID_MAP_NAME = "MAP_NO_VALID_MAP_NAME"
    MAP_NOT_ORIGINAL_AUTHOR = "MAP_NOT_ORIGINAL_AUTHOR"
    MAP_VERSION_EXISTS = "MAP_VERSION_EXISTS"
    MAP_NAME_CONFLICT = "MAP_NAME_CONFLICT"
    MAP_RENAME_FAILED = "MAP_RENAME_FAILED"
    UPLOAD_INVALID_FILE_EXTENSION = "UPLOAD_INVALID_FILE_EXTENSION"
    UPLOAD_FILE_TOO_LARGE = "UPLOAD_FILE_TOO_LARGE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# code -> (title, detail template)
ERROR_MESSAGES = {
    ErrorCode.MAP_MISSING_MAP_FOLDER_INSIDE_ZIP: (
        "No map folder inside zip file",
        "Zip files must contain a single folder with all map files inside.",
    ),
    ErrorCode.MAP_MULTIPLE_MAP_FOLDERS_INSIDE_ZIP: (
        "Multiple map folders inside zip file",
        "Zip files must contain exactly one map folder, found: {0}",
    ),
    ErrorCode.MAP_INVALID_ZIP: (
        "Invalid zip file",
        "The file '{0}' is not a readable zip archive.",
    ),
    ErrorCode.MAP_FILE_INSIDE_ZIP_MISSING: (
        "File is missing",
        "Cannot find a file ending with '{0}' inside the map folder.",
    ),
    ErrorCode.MAP_SCENARIO_LUA_MISSING: (
        "Scenario file missing or unreadable",
        "The *_scenario.lua file is missing or could not be evaluated.",
    ),
    ErrorCode.MAP_SCENARIO_LUA_INVALID_VALUE: (
        "Invalid scenario value",
        "The scenario entry '{0}' is missing or has the wrong type.",
    ),
    ErrorCode.MAP_NO_VALID_MAP_NAME: (
        "No valid map name",
        "The map name '{0}' is not valid.",
    ),
    ErrorCode.MAP_NOT_ORIGINAL_AUTHOR: (
        "No permission to update map",
        "Only the original author is allowed to upload new versions of '{0}'.",
    ),
    ErrorCode.MAP_VERSION_EXISTS: (
        "Map version already exists",
        "The map '{0}' already has a version {1}.",
    ),
    ErrorCode.MAP_NAME_CONFLICT: (
        "Map name conflict",
        "A file named '{0}' already exists.",
    ),
    ErrorCode.MAP_RENAME_FAILED: (
        "Renaming map files failed",
        "The file '{0}' could not be renamed.",
    ),
    ErrorCode.UPLOAD_INVALID_FILE_EXTENSION: (
        "Invalid file extension",
        "The uploaded file must have one of the extensions: {0}",
    ),
    ErrorCode.UPLOAD_FILE_TOO_LARGE: (
        "File too large",
        "The uploaded file exceeds the limit of {0} bytes.",
    ),
}


class ApiException(Exception):
    """Base exception for map upload failures"""
    status_code = 400
    log_level = "warning"

    def __init__(self, code: str, *args):
        self.code = code
        self.arguments = args
        title, detail = ERROR_MESSAGES.get(code, ("Error", "An unexpected error occurred"))
        self.title = title
        self.message = detail.format(*args)
        super().__init__(self.message)
        getattr(logger, self.log_level)("api_exception", code=code, arguments=list(args))

    def to_dict(self):
        return {
            'error': True,
            'code': self.code,
            'title': self.title,
            'message': self.message,
            'args': list(self.arguments),
        }


class MissingContentFolder(ApiException):
    def __init__(self):
        super().__init__(ErrorCode.MAP_MISSING_MAP_FOLDER_INSIDE_ZIP)


class MultipleContentFolders(ApiException):
    def __init__(self, names):
        super().__init__(ErrorCode.MAP_MULTIPLE_MAP_FOLDERS_INSIDE_ZIP, ", ".join(sorted(names)))


class InvalidArchive(ApiException):
    def __init__(self, filename: str):
        super().__init__(ErrorCode.MAP_INVALID_ZIP, filename)


class RequiredFileMissing(ApiException):
    def __init__(self, suffix: str):
        super().__init__(ErrorCode.MAP_FILE_INSIDE_ZIP_MISSING, suffix)
        self.suffix = suffix


class ScenarioDescriptorMissing(ApiException):
    def __init__(self):
        super().__init__(ErrorCode.MAP_SCENARIO_LUA_MISSING)


class ScenarioValueInvalid(ApiException):
    def __init__(self, key: str):
        super().__init__(ErrorCode.MAP_SCENARIO_LUA_INVALID_VALUE, key)


class InvalidMapName(ApiException):
    def __init__(self, value: str):
        super().__init__(ErrorCode.MAP_NO_VALID_MAP_NAME, value)


class NotOriginalAuthor(ApiException):
    status_code = 409

    def __init__(self, display_name: str):
        super().__init__(ErrorCode.MAP_NOT_ORIGINAL_AUTHOR, display_name)


class VersionAlreadyExists(ApiException):
    status_code = 409

    def __init__(self, display_name: str, version: int):
        super().__init__(ErrorCode.MAP_VERSION_EXISTS, display_name, version)


class MapNameConflict(ApiException):
    status_code = 409

    def __init__(self, filename: str):
        super().__init__(ErrorCode.MAP_NAME_CONFLICT, filename)


class RenameFailed(ApiException):
    status_code = 500
    log_level = "error"

    def __init__(self, filename: str):
        super().__init__(ErrorCode.MAP_RENAME_FAILED, filename)


class UploadExtensionInvalid(ApiException):
    def __init__(self, extensions):
        super().__init__(ErrorCode.UPLOAD_INVALID_FILE_EXTENSION, ", ".join(extensions))


class UploadTooLarge(ApiException):
    status_code = 413

    def __init__(self, max_size: int):
        super().__init__(ErrorCode.UPLOAD_FILE_TOO_LARGE, max_size)


def register_exception_handlers(app):
    """Register exception handlers with Flask app"""

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        """Handle HTTP exceptions"""
        return error_response(
            e.name.upper().replace(' ', '_'),
            message=e.description,
            status_code=e.code,
        )

    @app.errorhandler(ApiException)
    def handle_api_exception(e):
        """Handle map upload failures"""
        return error_response(
            e.code,
            message=e.message,
            details={'title': e.title, 'args': list(e.arguments)},
            status_code=e.status_code,
        )

    @app.errorhandler(Exception)
    def handle_generic_exception(e):
        """Handle all other exceptions"""
        logger.error("unhandled_exception", error=str(e), exc_info=True)
        return error_response(
            ErrorCode.INTERNAL_ERROR,
            message='An unexpected error occurred',
            status_code=500,
        )
