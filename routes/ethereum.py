from flask import Blueprint, Response, abort, current_app, jsonify, request
from web3 import Web3
import logging

from services.exceptions import InvalidFunctionCallError
from utils.abi_utils import coerce_arguments

logger = logging.getLogger(__name__)

ethereum_bp = Blueprint('ethereum', __name__, url_prefix='/api/v1/ethereum')


def _service(name):
    return current_app.extensions['contract_digitizer'][name]


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description='No JSON data received')
    return data


def _required(data, field):
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        abort(400, description=f'{field} is required')
    return value


@ethereum_bp.route('/register', methods=['POST'])
def register_wallet():
    """Create a new encrypted wallet"""
    data = request.get_json(silent=True) or {}
    label = request.args.get('label') or data.get('label')
    if not label:
        abort(400, description='label is required')

    wallet = _service('wallet_manager').create_wallet(label)
    return jsonify({'success': True, 'wallet': wallet.to_dict()}), 201


@ethereum_bp.route('/wallets')
def list_wallets():
    wallets = _service('wallet_manager').list_wallets()
    return jsonify({'success': True, 'wallets': [wallet.to_dict() for wallet in wallets]})


@ethereum_bp.route('/deploy-contract', methods=['POST'])
def deploy_contract():
    """Deploy a compiled contract with the given constructor parameters"""
    data = _json_body()
    contract_id = _required(data, 'contractId')
    deployer = _required(data, 'deployerWalletAddress')
    args = coerce_arguments(data.get('constructorParams'))

    logger.info(f"Deploying contract with id: {contract_id}")
    signer = _service('wallet_manager').load_credentials(deployer)
    address = _service('contract_service').deploy(contract_id, args, signer)
    return jsonify({'success': True, 'contractId': contract_id, 'contractAddress': address})


@ethereum_bp.route('/estimate-gas', methods=['POST'])
def estimate_gas():
    data = _json_body()
    contract_id = _required(data, 'contractId')
    deployer = _required(data, 'deployerWalletAddress')
    args = coerce_arguments(data.get('constructorParams'))

    logger.info(f"Estimating gas for contract id: {contract_id}")
    estimate = _service('contract_service').estimate_gas(contract_id, args, deployer)
    return jsonify({
        'success': True,
        'gasPriceWei': str(estimate.gas_price),
        'gasLimit': str(estimate.gas_limit),
        'estimatedCostEth': str(Web3.from_wei(estimate.gas_price * estimate.gas_limit, 'ether')),
    })


@ethereum_bp.route('/<address>/confirmed')
def is_contract_confirmed(address):
    """Check the contract on-chain and update its status"""
    confirmed = _service('contract_service').check_contract_confirmation(address)
    return jsonify({'success': True, 'address': address, 'confirmed': confirmed})


@ethereum_bp.route('/transaction/<tx_hash>/receipt')
def get_transaction_receipt(tx_hash):
    receipt = _service('web3_service').get_transaction_receipt(tx_hash)
    if receipt is None:
        return '', 204
    return Response(Web3.to_json(receipt), mimetype='application/json')


@ethereum_bp.route('/<address>/balance')
def get_balance(address):
    balance = _service('web3_service').get_balance(address)
    return jsonify({'success': True, 'address': address, 'balance': str(balance)})


@ethereum_bp.route('/<address>/invoke', methods=['POST'])
def invoke_contract_function(address):
    """Call a state-changing function of a deployed contract"""
    data = _json_body()
    function_name = _required(data, 'functionName')
    caller = _required(data, 'requestedByWalletAddress')
    args = coerce_arguments(data.get('params'))
    try:
        value_wei = int(data.get('valueWei') or 0)
    except (TypeError, ValueError):
        raise InvalidFunctionCallError(f"Invalid valueWei: {data.get('valueWei')!r}")

    contract_service = _service('contract_service')
    contract = contract_service.get_contract_by_address(address)
    signer = _service('wallet_manager').load_credentials(caller)
    tx_hash = contract_service.invoke_contract_function(contract.id, function_name, args, value_wei, signer)
    return jsonify({'success': True, 'transactionHash': tx_hash})


@ethereum_bp.route('/resolve-addresses', methods=['POST'])
def resolve_addresses():
    data = _json_body()
    contract_address = _required(data, 'contractAddress')
    getters = data.get('getterFunctions') or []
    addresses = _service('web3_service').resolve_addresses(contract_address, getters)
    return jsonify({'success': True, 'addresses': addresses})


@ethereum_bp.route('/parties-balances', methods=['POST'])
def parties_balances():
    """Balances of the contract and of its parties; ABI defaults to the stored one"""
    data = _json_body()
    contract_address = _required(data, 'contractAddress')
    abi = data.get('abi')
    if not abi:
        abi = _service('contract_service').get_contract_by_address(contract_address).abi

    parties = _service('web3_service').get_contract_parties_balances(contract_address, abi)
    return jsonify({
        'success': True,
        'parties': [dict(party, balance=str(party['balance'])) for party in parties],
    })
