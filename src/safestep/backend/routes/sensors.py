"""Sensor connection routes for the SafeStep backend."""
from flask import Blueprint, jsonify
import logging
from . import get_context, error_response, parse_slot

logger = logging.getLogger(__name__)

bp = Blueprint('sensors', __name__, url_prefix='/api/sensors')


@bp.route('', methods=['GET'])
def list_sensors():
    """Connection status of both sensor slots."""
    try:
        return jsonify({
            'status': 'success',
            'data': get_context().coordinator.status()
        })
    except Exception as e:
        logger.error(f'Error getting sensor status: {str(e)}')
        return error_response(str(e), 500)


@bp.route('/<slot>/scan', methods=['POST'])
def scan(slot):
    """Start scanning for a sensor."""
    try:
        slot_id = parse_slot(slot)
        coordinator = get_context().coordinator
        if not coordinator.scan(slot_id):
            return error_response(
                f'Cannot scan {slot_id.value}: sensor is {coordinator.state(slot_id).value}', 409
            )
        return jsonify({
            'status': 'success',
            'data': coordinator.status()[slot_id.value]
        })
    except ValueError as e:
        return error_response(str(e), 400)
    except Exception as e:
        logger.error(f'Error starting scan: {str(e)}')
        return error_response(str(e), 500)


@bp.route('/<slot>/cancel', methods=['POST'])
def cancel_scan(slot):
    """Cancel an ongoing scan."""
    try:
        slot_id = parse_slot(slot)
        coordinator = get_context().coordinator
        coordinator.cancel_scan(slot_id)
        return jsonify({
            'status': 'success',
            'data': coordinator.status()[slot_id.value]
        })
    except ValueError as e:
        return error_response(str(e), 400)
    except Exception as e:
        logger.error(f'Error cancelling scan: {str(e)}')
        return error_response(str(e), 500)


@bp.route('/<slot>/disconnect', methods=['POST'])
def disconnect(slot):
    """Disconnect and reset a sensor."""
    try:
        slot_id = parse_slot(slot)
        coordinator = get_context().coordinator
        coordinator.disconnect(slot_id)
        return jsonify({
            'status': 'success',
            'data': coordinator.status()[slot_id.value]
        })
    except ValueError as e:
        return error_response(str(e), 400)
    except Exception as e:
        logger.error(f'Error disconnecting sensor: {str(e)}')
        return error_response(str(e), 500)


@bp.route('/<slot>/ping', methods=['POST'])
def ping(slot):
    """Flash a sensor's LED to identify it."""
    try:
        slot_id = parse_slot(slot)
        if not get_context().coordinator.ping(slot_id):
            return error_response(f'Sensor {slot_id.value} is not connected', 409)
        return jsonify({
            'status': 'success',
            'message': f'Pinged {slot_id.value} sensor'
        })
    except ValueError as e:
        return error_response(str(e), 400)
    except Exception as e:
        logger.error(f'Error pinging sensor: {str(e)}')
        return error_response(str(e), 500)


@bp.route('/<slot>/battery', methods=['POST'])
def refresh_battery(slot):
    """Read a sensor's battery level."""
    try:
        slot_id = parse_slot(slot)
        coordinator = get_context().coordinator
        charge = coordinator.refresh_battery(slot_id)
        if charge is None:
            return error_response(f'Battery of {slot_id.value} sensor unavailable', 409)
        return jsonify({
            'status': 'success',
            'data': coordinator.slots[slot_id].battery.to_dict()
        })
    except ValueError as e:
        return error_response(str(e), 400)
    except Exception as e:
        logger.error(f'Error reading battery: {str(e)}')
        return error_response(str(e), 500)
