#!/usr/bin/env python3
"""
ImageToFit Web App

Flask transport for the workout pipeline: parse an extracted workout document
into an editable workout, and export an edited workout as a .zwo file.
Image upload and the extraction model live outside this service.
"""

import os
import sys
from pathlib import Path

from flask import Flask, Response, jsonify, request

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from imagetofit.config_loader import get_config
from imagetofit.logger import get_logger
from imagetofit.normalizer import NormalizationPolicy, UnrecoverableInputError, normalize
from imagetofit.workout_model import workout_from_dict
from imagetofit.zwo_encoder import UnencodableWorkoutError, encode

config = get_config()
log = get_logger()
log.set_level(config.get('logging.level', 'INFO'))
log.set_json_mode(str(config.get('logging.format', 'human')).lower() == 'json')

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = int(config.get('webapp.max_content_length', 1024 * 1024))

POLICY = NormalizationPolicy.from_config(config)

EXPORT_FAILED_MESSAGE = "This workout could not be exported. Check the segment values and try again."


# =============================================================================
# SECURITY CONFIGURATION
# =============================================================================

# Security headers
@app.after_request
def set_security_headers(response):
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['X-XSS-Protection'] = '1; mode=block'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    if os.environ.get('FLASK_ENV') == 'production':
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
    return response


# =============================================================================
# API ENDPOINTS
# =============================================================================

@app.route('/health')
def health():
    return jsonify({"status": "ok"})


@app.route('/api/workouts/parse', methods=['POST'])
def api_parse():
    """API: Normalize an extracted workout document."""
    body = request.get_json(silent=True)
    if body is None:
        return jsonify({"error": "Request body must be JSON"}), 400

    document = body.get('document', body) if isinstance(body, dict) else body

    try:
        result = normalize(document, POLICY)
    except UnrecoverableInputError as e:
        log.warning("Rejected workout document", error=str(e))
        return jsonify({"error": str(e)}), 422

    return jsonify(result.to_dict())


@app.route('/api/workouts/export/zwo', methods=['POST'])
def api_export_zwo():
    """API: Encode an edited workout as a .zwo download."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict) or 'workout' not in body:
        return jsonify({"error": "Request body must be a JSON object with a 'workout' field"}), 400

    try:
        workout = workout_from_dict(body['workout'])
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        data, filename = encode(workout)
    except UnencodableWorkoutError as e:
        log.error("Workout export failed", errors=e.errors)
        return jsonify({"error": EXPORT_FAILED_MESSAGE}), 500

    response = Response(data, mimetype='application/xml')
    response.headers['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.errorhandler(404)
def not_found(e):
    return jsonify({"error": "Not found"}), 404


@app.errorhandler(405)
def method_not_allowed(e):
    return jsonify({"error": "Method not allowed"}), 405


@app.errorhandler(413)
def payload_too_large(e):
    return jsonify({"error": "Request body too large"}), 413


@app.errorhandler(500)
def server_error(e):
    return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# MAIN
# =============================================================================

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    # Default to false in production, true only if explicitly set
    debug = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'
    app.run(host='0.0.0.0', port=port, debug=debug)
