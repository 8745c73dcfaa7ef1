"""Shared fixtures: a mocked ledger node, an in-memory database and a signing account."""

import json
from unittest.mock import MagicMock

import pytest
from eth_account import Account

from app import create_app
from models import db
from models.contract import ContractStatus
from models.deployment import CompilationResult
from services.contract_service import ContractService
from services.record_store import ContractRecordStore
from services.web3_service import Web3Service

OWNER = 'alice'
OTHER_USER = 'mallory'

CONTRACT_ADDRESS = '0x5FbDB2315678afecb367f032d93F642f64180aa3'
BUYER_ADDRESS = '0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266'
SELLER_ADDRESS = '0x70997970C51812dc3A010C7d01b50e0d17dc79C8'
ZERO_ADDRESS = '0x' + '0' * 40

SIGNER_KEY = '0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318'
TX_HASH = '0x' + 'ab' * 32

SAMPLE_BYTECODE = '600160'
SAMPLE_SOURCE = 'pragma solidity ^0.8.0; contract Sale { address public buyer; }'
SAMPLE_CLAUSES = ['The buyer pays the price on delivery.', 'The seller delivers the goods within 30 days.']
SAMPLE_ABI = json.dumps([
    {'type': 'constructor', 'stateMutability': 'nonpayable',
     'inputs': [{'name': '_buyer', 'type': 'address'}, {'name': '_price', 'type': 'uint256'}]},
    {'type': 'function', 'name': 'buyer', 'stateMutability': 'view',
     'inputs': [], 'outputs': [{'name': '', 'type': 'address'}]},
    {'type': 'function', 'name': 'seller', 'stateMutability': 'view',
     'inputs': [], 'outputs': [{'name': '', 'type': 'address'}]},
    {'type': 'function', 'name': 'price', 'stateMutability': 'view',
     'inputs': [], 'outputs': [{'name': '', 'type': 'uint256'}]},
    {'type': 'function', 'name': 'pay', 'stateMutability': 'payable', 'inputs': [], 'outputs': []},
    {'type': 'function', 'name': 'setPrice', 'stateMutability': 'nonpayable',
     'inputs': [{'name': '_price', 'type': 'uint256'}], 'outputs': []},
    {'type': 'function', 'name': 'isDestroyed', 'stateMutability': 'view',
     'inputs': [], 'outputs': [{'name': '', 'type': 'bool'}]},
])

# Same contract as generated without the self-destruct probe
PLAIN_ABI = json.dumps([entry for entry in json.loads(SAMPLE_ABI) if entry.get('name') != 'isDestroyed'])


class FakeCurrentUser:
    """Stands in for the auth boundary; tests switch users by assigning user_id"""

    def __init__(self, user_id=OWNER):
        self.user_id = user_id

    def __call__(self):
        return self.user_id


@pytest.fixture
def mock_w3():
    w3 = MagicMock()
    w3.eth.gas_price = 1_000_000_000
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.estimate_gas.return_value = 100_000
    w3.eth.send_raw_transaction.return_value = bytes.fromhex(TX_HASH[2:])
    w3.eth.get_transaction_receipt.return_value = {'status': 1, 'contractAddress': CONTRACT_ADDRESS}
    w3.eth.get_balance.return_value = 10 ** 18
    w3.eth.get_code.return_value = bytes.fromhex('6080604052')
    w3.eth.call.return_value = b'\x00' * 32
    return w3


@pytest.fixture
def sleeps():
    """Intervals the ledger client slept for, instead of sleeping"""
    return []


@pytest.fixture
def web3_service(mock_w3, sleeps):
    return Web3Service(w3=mock_w3, chain_id=1337, sleep=sleeps.append)


@pytest.fixture
def signer():
    return Account.from_key(SIGNER_KEY)


@pytest.fixture
def compiler():
    compiler = MagicMock()
    compiler.compile.return_value = CompilationResult(SAMPLE_BYTECODE, SAMPLE_ABI)
    return compiler


@pytest.fixture
def ai_client():
    client = MagicMock()
    client.extract_clauses.return_value = list(SAMPLE_CLAUSES)
    client.generate_solidity.return_value = SAMPLE_SOURCE
    return client


@pytest.fixture
def app(tmp_path, web3_service, compiler, ai_client):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'STATUS_WORKER_ENABLED': False,
        'WALLET_KEYSTORE_DIR': str(tmp_path / 'wallets'),
        'WALLET_KEYSTORE_PASSWORD': 'test-password',
        'WALLET_KDF': 'pbkdf2',
        'WALLET_KDF_ITERATIONS': 2,
    }, web3_service=web3_service, compiler=compiler, ai_client=ai_client)

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def current_user():
    return FakeCurrentUser()


@pytest.fixture
def record_store(app):
    return ContractRecordStore()


@pytest.fixture
def contract_service(record_store, web3_service, compiler, ai_client, current_user):
    return ContractService(record_store, web3_service, compiler, current_user, ai_client=ai_client)


def make_record(record_store, record_id, status, user_id=OWNER, **fields):
    """Insert a record directly at a given lifecycle stage"""
    values = {'userId': user_id, 'contractText': 'Sale of goods agreement.', 'status': status}
    if ContractStatus.parse(status).rank >= ContractStatus.CLAUSES_EXTRACTED.rank:
        values['extractedClauses'] = list(SAMPLE_CLAUSES)
    if ContractStatus.parse(status).rank >= ContractStatus.SOLIDITY_PREPARED.rank:
        values['soliditySource'] = SAMPLE_SOURCE
    if ContractStatus.parse(status).rank >= ContractStatus.SOLIDITY_GENERATED.rank:
        values['binary'] = SAMPLE_BYTECODE
        values['abi'] = SAMPLE_ABI
    if ContractStatus.parse(status).is_deployed():
        values['deployedAddress'] = CONTRACT_ADDRESS
    values.update(fields)
    return record_store.set(record_id, values)


@pytest.fixture
def compiled_contract(record_store):
    return make_record(record_store, 'compiled-1', ContractStatus.SOLIDITY_GENERATED).id


@pytest.fixture
def deployed_contract(record_store):
    return make_record(record_store, 'deployed-1', ContractStatus.DEPLOYED).id
