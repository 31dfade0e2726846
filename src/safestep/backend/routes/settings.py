"""User settings and record maintenance routes."""
from flask import Blueprint, jsonify, request
import logging
from . import get_context, error_response

logger = logging.getLogger(__name__)

bp = Blueprint('settings', __name__, url_prefix='/api')


@bp.route('/settings', methods=['GET'])
def get_settings():
    """Current user settings."""
    return jsonify({
        'status': 'success',
        'data': get_context().settings.get().to_dict()
    })


@bp.route('/settings', methods=['POST'])
def update_settings():
    """Update user settings. Unknown keys are rejected."""
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return error_response('Request body must be a JSON object', 400)
        settings = get_context().settings.update(**data)
        return jsonify({
            'status': 'success',
            'data': settings.to_dict()
        })
    except (KeyError, ValueError, TypeError) as e:
        return error_response(str(e).strip("'\""), 400)
    except Exception as e:
        logger.error(f'Error updating settings: {str(e)}')
        return error_response(str(e), 500)


@bp.route('/records/scan', methods=['GET'])
def scan_records():
    """Index stored batches and records and report orphans."""
    try:
        scanner = get_context().record_scanner()
        return jsonify({
            'status': 'success',
            'data': scanner.scan()
        })
    except ValueError as e:
        return error_response(str(e), 400)
    except Exception as e:
        logger.error(f'Error scanning records: {str(e)}')
        return error_response(str(e), 500)


@bp.route('/uploads/retry', methods=['POST'])
def retry_uploads():
    """Requeue uploads that exhausted their attempts."""
    try:
        count = get_context().uploads.retry_failed()
        return jsonify({
            'status': 'success',
            'requeued': count
        })
    except Exception as e:
        logger.error(f'Error retrying uploads: {str(e)}')
        return error_response(str(e), 500)
