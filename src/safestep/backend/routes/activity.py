"""Motion activity ingress for walking detection."""
from flask import Blueprint, jsonify, request
import logging
import time
from . import get_context, error_response
from ...detection.activity import MotionEvent

logger = logging.getLogger(__name__)

bp = Blueprint('activity', __name__, url_prefix='/api/activity')


@bp.route('', methods=['POST'])
def post_activity():
    """Feed a motion-activity event to the walking detector.

    Body: {"confidence": "high", "walking": true, "stationary": false}
    with an optional "timestamp" (seconds since epoch).
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return error_response('Request body must be a JSON object', 400)
        event = MotionEvent.from_dict(data, timestamp=time.time())
        transition = get_context().detector.process(event)
        return jsonify({
            'status': 'success',
            'transition': transition.value
        })
    except ValueError as e:
        return error_response(str(e), 400)
    except Exception as e:
        logger.error(f'Error processing motion event: {str(e)}')
        return error_response(str(e), 500)
