from flask import current_app, jsonify, request

from tangram_bridge.bridge import CVFrame, TargetPiece
from tangram_bridge.logger import get_logger
from tangram_bridge.main import main_bp
from tangram_bridge.main.serializers import record_to_dict, report_to_dict

logger = get_logger(__name__)


def get_processor():
    return current_app.extensions['frame_processor']


def calibration_info(processor):
    return {
        'scale': processor.store.get_scale(),
        'camera_inversion': processor.converter.camera_inversion,
    }


@main_bp.route('/health')
def health():
    processor = get_processor()
    return jsonify({
        'success': True,
        'status': 'ok',
        'calibrated': processor.store.get_scale() is not None,
        'targets': len(processor.targets),
    })


@main_bp.route('/frames', methods=['POST'])
def process_frame():
    """Process one CV frame event and return the frame report."""
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({'success': False, 'error': 'Expected JSON frame payload'}), 400

    try:
        frame = CVFrame.from_dict(data)
    except (TypeError, ValueError) as e:
        return jsonify({'success': False, 'error': f'Invalid frame: {e}'}), 400

    try:
        report = get_processor().process_frame(frame)
        return jsonify({'success': True, 'report': report_to_dict(report)})

    except Exception as e:
        logger.exception("Frame processing failed")
        return jsonify({'success': False, 'error': str(e)}), 500


@main_bp.route('/targets', methods=['PUT'])
def set_targets():
    """Load the targets of a new puzzle: {"targets": [{id, piece_type, position, rotation, flipped}]}."""
    data = request.get_json(silent=True) or {}
    raw_targets = data.get('targets')
    if not isinstance(raw_targets, list):
        return jsonify({'success': False, 'error': "'targets' must be a list"}), 400

    try:
        targets = [TargetPiece.from_dict(t) for t in raw_targets]
        get_processor().set_targets(targets)
    except (KeyError, TypeError, ValueError) as e:
        return jsonify({'success': False, 'error': f'Invalid targets: {e}'}), 400

    return jsonify({'success': True, 'targets': len(targets)})


@main_bp.route('/pieces')
def list_pieces():
    records = get_processor().records()
    return jsonify({
        'success': True,
        'pieces': [record_to_dict(r) for r in sorted(records, key=lambda r: r.piece_id)],
    })


@main_bp.route('/calibration', methods=['GET'])
def get_calibration():
    return jsonify({'success': True, 'calibration': calibration_info(get_processor())})


@main_bp.route('/calibration', methods=['PUT'])
def update_calibration():
    """Set scale and/or camera inversion: {"scale": 100.0, "camera_inversion": true}."""
    data = request.get_json(silent=True) or {}
    processor = get_processor()

    if 'camera_inversion' in data:
        if not isinstance(data['camera_inversion'], bool):
            return jsonify({'success': False, 'error': "'camera_inversion' must be a boolean"}), 400
        processor.set_camera_inversion(data['camera_inversion'])

    if 'scale' in data:
        try:
            processor.set_scale(float(data["scale"]))
        except (TypeError, ValueError) as e:
            return jsonify({'success': False, 'error': str(e)}), 400

    return jsonify({'success': True, 'calibration': calibration_info(processor)})


@main_bp.route('/calibration', methods=['DELETE'])
def invalidate_calibration():
    """Drop the cached scale; the next frame recalibrates."""
    processor = get_processor()
    processor.invalidate_calibration()
    return jsonify({'success': True, 'calibration': calibration_info(processor)})
