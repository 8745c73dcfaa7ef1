from flask import jsonify
import logging

from services.exceptions import ContractDigitizerError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Map service errors to JSON responses by category"""

    @app.errorhandler(ContractDigitizerError)
    def handle_service_error(error):
        if error.http_status >= 500:
            logger.error(f"{error.category}: {error.message}")
        else:
            logger.warning(f"{error.category}: {error.message}")
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(400)
    def handle_bad_request(error):
        return jsonify({'success': False, 'error': getattr(error, 'description', str(error)), 'category': 'bad_request'}), 400

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({'success': False, 'error': 'Not found', 'category': 'not_found'}), 404
