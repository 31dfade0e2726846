"""API blueprints for the SafeStep service."""

from flask import current_app, jsonify

from ...sensors.base import SlotId


def get_context():
    """AppContext of the running application."""
    return current_app.extensions['safestep']


def error_response(message: str, code: int):
    return jsonify({
        'status': 'error',
        'message': message
    }), code


def parse_slot(slot: str) -> SlotId:
    """Parse a slot path segment.

    Raises:
        ValueError: If the slot is unknown
    """
    try:
        return SlotId(slot.lower())
    except ValueError:
        raise ValueError(f"Unknown sensor slot: {slot}")
