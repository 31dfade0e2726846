"""Walking session routes for the SafeStep backend."""
from flask import Blueprint, jsonify, request
import logging
from . import get_context, error_response
from ..models import FinalizeRequest

logger = logging.getLogger(__name__)

bp = Blueprint('session', __name__, url_prefix='/api/session')


@bp.route('', methods=['GET'])
def get_session():
    """Current session status."""
    try:
        return jsonify({
            'status': 'success',
            'data': get_context().recorder.status()
        })
    except Exception as e:
        logger.error(f'Error getting session status: {str(e)}')
        return error_response(str(e), 500)


@bp.route('/start', methods=['POST'])
def start_session():
    """Start recording a walking session."""
    try:
        state = get_context().recorder.start()
        if state is None:
            return error_response('No sensor connected', 409)
        return jsonify({
            'status': 'success',
            'data': state.to_dict()
        })
    except RuntimeError as e:
        return error_response(str(e), 409)
    except Exception as e:
        logger.error(f'Error starting session: {str(e)}')
        return error_response(str(e), 500)


@bp.route('/stop', methods=['POST'])
def stop_session():
    """Stop recording. The session stays open for finalize or cancel."""
    try:
        recorder = get_context().recorder
        if not recorder.stop():
            return error_response('No session is recording', 409)
        return jsonify({
            'status': 'success',
            'data': recorder.status()
        })
    except Exception as e:
        logger.error(f'Error stopping session: {str(e)}')
        return error_response(str(e), 500)


@bp.route('/cancel', methods=['POST'])
def cancel_session():
    """Cancel the session without a hazard report."""
    try:
        batch_ids = get_context().recorder.cancel()
        return jsonify({
            'status': 'success',
            'batch_ids': batch_ids,
            'message': f'Cancelled session ({len(batch_ids)} batches left unreferenced)'
        })
    except Exception as e:
        logger.error(f'Error cancelling session: {str(e)}')
        return error_response(str(e), 500)


@bp.route('/finalize', methods=['POST'])
def finalize_session():
    """Finalize the session and queue its hazard report."""
    try:
        req = FinalizeRequest.from_dict(request.get_json(silent=True) or {})
        record = get_context().recorder.finalize(
            req.hazards,
            req.intensities,
            image_id=req.image_id,
            building=req.building,
            single_point_report=req.single_point_report,
        )
        return jsonify({
            'status': 'success',
            'data': record.to_dict()
        })
    except ValueError as e:
        return error_response(str(e), 400)
    except RuntimeError as e:
        return error_response(str(e), 409)
    except Exception as e:
        logger.error(f'Error finalizing session: {str(e)}')
        return error_response(str(e), 500)
