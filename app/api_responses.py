"""
API Response Utilities - Standardized responses for the map endpoints
"""

from flask import jsonify

SUCCESS = "SUCCESS"


def success_response(data=None, message=None, status_code=200):
    """
    Standard success response format for API endpoints
    """
    response = {"code": SUCCESS, "success": True}

    if data is not None:
        response["data"] = data

    if message:
        response["message"] = message

    return jsonify(response), status_code


def error_response(error_code, message=None, details=None, status_code=400):
    """
    Standard error response format for API endpoints
    """
    response = {"code": error_code, "success": False}

    if message:
        response["message"] = message

    if details:
        response["details"] = details

    return jsonify(response), status_code
