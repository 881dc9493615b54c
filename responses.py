from flask import jsonify


def envelope(message, data=None, status=200):
    """Every response body is ``{"message": ..., "data": ...}``."""
    return jsonify(message=message, data={} if data is None else data), status


def no_content():
    return "", 204
