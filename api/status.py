"""Status API - model load state, detection metrics and the latest frame"""
import logging

from flask import Blueprint, Response, current_app, jsonify

status_bp = Blueprint('status', __name__)
logger = logging.getLogger(__name__)


@status_bp.route('/status', methods=['GET'])
def get_status():
    return jsonify(current_app.recognition.state.snapshot())


@status_bp.route('/gallery', methods=['GET'])
def get_gallery():
    gallery = current_app.recognition.gallery
    if gallery is None:
        return jsonify({"error": "Gallery not built yet"}), 503
    return jsonify({"gallery": gallery.to_dict()})


@status_bp.route('/stats', methods=['GET'])
def get_stats():
    try:
        return jsonify({"stats": current_app.recognition.get_stats()})
    except Exception as e:
        logger.error(f"Stats error: {e}")
        return jsonify({"error": str(e)}), 500


@status_bp.route('/stream/frame.jpg', methods=['GET'])
def latest_frame():
    """REST fallback: latest annotated frame for polling clients."""
    jpeg = current_app.recognition.latest_jpeg
    if jpeg is None:
        return jsonify({"error": "No frame yet"}), 503
    return Response(jpeg, mimetype='image/jpeg', headers={'Cache-Control': 'no-store'})
