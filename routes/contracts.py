from flask import Blueprint, current_app, jsonify, request
import logging

from services.exceptions import InvalidArtifactError

logger = logging.getLogger(__name__)

contracts_bp = Blueprint('contracts', __name__, url_prefix='/api/v1/contracts')


def _contract_service():
    return current_app.extensions['contract_digitizer']['contract_service']


@contracts_bp.route('/upload', methods=['POST'])
def upload():
    """Store contract text sent as JSON {"text": ...} or as an uploaded text file"""
    uploaded = request.files.get('file')
    if uploaded is not None:
        try:
            text = uploaded.read().decode('utf-8')
        except UnicodeDecodeError:
            raise InvalidArtifactError("Uploaded file must be UTF-8 text")
    else:
        data = request.get_json(silent=True) or {}
        text = data.get('text')

    contract_id = _contract_service().save_uploaded_contract(text)
    return jsonify({'success': True, 'contractId': contract_id}), 201


@contracts_bp.route('/list')
def list_contracts():
    contracts = _contract_service().list_contracts_for_user()
    return jsonify({'success': True, 'contracts': [contract.to_dict() for contract in contracts]})


@contracts_bp.route('/<contract_id>')
def get_contract(contract_id):
    contract = _contract_service().get_contract(contract_id)
    return jsonify({'success': True, 'contract': contract.to_dict()})


@contracts_bp.route('/<contract_id>/extract-clauses', methods=['POST'])
def extract_clauses(contract_id):
    clauses = _contract_service().extract_clauses(contract_id)
    return jsonify({'success': True, 'contractId': contract_id, 'clauses': clauses})


@contracts_bp.route('/<contract_id>/generate-solidity', methods=['POST'])
def generate_solidity(contract_id):
    """Generate Solidity from the extracted clauses and compile it"""
    contract = _contract_service().generate_solidity(contract_id)
    return jsonify({'success': True, 'contract': contract.to_dict()})


@contracts_bp.route('/<contract_id>', methods=['DELETE'])
def delete_contract(contract_id):
    _contract_service().delete_if_not_deployed(contract_id)
    return jsonify({'success': True, 'contractId': contract_id})
