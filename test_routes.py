"""End-to-end tests of the HTTP surface with a mocked ledger node."""

import io

import pytest
from web3.exceptions import TransactionNotFound, Web3RPCError

from models.contract import ContractStatus
from conftest import (
    BUYER_ADDRESS,
    CONTRACT_ADDRESS,
    OTHER_USER,
    OWNER,
    SAMPLE_CLAUSES,
    TX_HASH,
    make_record,
)

AUTH = {'X-User-Id': OWNER}


@pytest.fixture
def wallet(client):
    response = client.post('/api/v1/ethereum/register?label=deployer', headers=AUTH)
    assert response.status_code == 201
    return response.get_json()['wallet']


class TestContractRoutes:

    def test_upload_and_fetch(self, client):
        response = client.post('/api/v1/contracts/upload', json={'text': 'Lease agreement.'}, headers=AUTH)
        assert response.status_code == 201
        contract_id = response.get_json()['contractId']

        response = client.get(f'/api/v1/contracts/{contract_id}', headers=AUTH)
        contract = response.get_json()['contract']
        assert contract['status'] == 'UPLOADED'
        assert contract['userId'] == OWNER
        assert contract['contractText'] == 'Lease agreement.'

    def test_upload_text_file(self, client):
        response = client.post('/api/v1/contracts/upload', headers=AUTH,
                               data={'file': (io.BytesIO('Ugovor o zakupu.'.encode('utf-8')), 'contract.txt')},
                               content_type='multipart/form-data')
        assert response.status_code == 201

    def test_upload_requires_authentication(self, client):
        response = client.post('/api/v1/contracts/upload', json={'text': 'Lease agreement.'})
        assert response.status_code == 403
        assert response.get_json() == {
            'success': False,
            'error': 'Authentication required',
            'category': 'unauthorized',
        }

    def test_list(self, client, record_store):
        make_record(record_store, 'mine', ContractStatus.UPLOADED)
        make_record(record_store, 'theirs', ContractStatus.UPLOADED, user_id=OTHER_USER)
        response = client.get('/api/v1/contracts/list', headers=AUTH)
        assert [c['id'] for c in response.get_json()['contracts']] == ['mine']

    def test_missing_contract(self, client):
        response = client.get('/api/v1/contracts/nope', headers=AUTH)
        assert response.status_code == 404
        assert response.get_json()['category'] == 'record_not_found'

    def test_pipeline(self, client, record_store):
        make_record(record_store, 'c1', ContractStatus.UPLOADED)

        response = client.post('/api/v1/contracts/c1/extract-clauses', headers=AUTH)
        assert response.get_json()['clauses'] == SAMPLE_CLAUSES

        response = client.post('/api/v1/contracts/c1/generate-solidity', headers=AUTH)
        assert response.get_json()['contract']['status'] == 'SOLIDITY_GENERATED'

    def test_delete_deployed_is_refused(self, client, deployed_contract, record_store):
        response = client.delete(f'/api/v1/contracts/{deployed_contract}', headers=AUTH)
        assert response.status_code == 409
        assert response.get_json()['category'] == 'already_deployed'
        assert record_store.get(deployed_contract) is not None

    def test_delete(self, client, compiled_contract):
        assert client.delete(f'/api/v1/contracts/{compiled_contract}', headers=AUTH).status_code == 200
        assert client.get(f'/api/v1/contracts/{compiled_contract}', headers=AUTH).status_code == 404


class TestEthereumRoutes:

    def test_register_and_list_wallets(self, client, wallet):
        assert wallet['label'] == 'deployer'
        assert wallet['balance'] == '1'
        assert 'keystore_file' not in wallet

        response = client.get('/api/v1/ethereum/wallets', headers=AUTH)
        assert response.get_json()['wallets'] == [wallet]

    def test_register_invalid_label(self, client):
        response = client.post('/api/v1/ethereum/register', json={'label': 'bad label'}, headers=AUTH)
        assert response.status_code == 500
        assert response.get_json()['category'] == 'wallet_creation_failed'

    def test_deploy(self, client, compiled_contract, wallet, record_store):
        response = client.post('/api/v1/ethereum/deploy-contract', headers=AUTH, json={
            'contractId': compiled_contract,
            'constructorParams': [BUYER_ADDRESS, '100'],
            'deployerWalletAddress': wallet['address'],
        })
        assert response.status_code == 200
        assert response.get_json()['contractAddress'] == CONTRACT_ADDRESS
        assert record_store.get(compiled_contract).contract_status == ContractStatus.DEPLOYED

    def test_deploy_unknown_wallet(self, client, compiled_contract):
        response = client.post('/api/v1/ethereum/deploy-contract', headers=AUTH, json={
            'contractId': compiled_contract,
            'deployerWalletAddress': BUYER_ADDRESS,
        })
        assert response.status_code == 404
        assert response.get_json()['category'] == 'wallet_not_found'

    def test_deploy_requires_contract_id(self, client):
        response = client.post('/api/v1/ethereum/deploy-contract', headers=AUTH, json={})
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_estimate_gas(self, client, compiled_contract):
        response = client.post('/api/v1/ethereum/estimate-gas', headers=AUTH, json={
            'contractId': compiled_contract,
            'constructorParams': [BUYER_ADDRESS, '100'],
            'deployerWalletAddress': BUYER_ADDRESS,
        })
        body = response.get_json()
        assert body['gasLimit'] == '200000'
        assert body['gasPriceWei'] == '1000000000'
        assert body['estimatedCostEth'] == '0.0002'

    def test_estimate_gas_failure(self, client, compiled_contract, mock_w3):
        mock_w3.eth.estimate_gas.return_value = 0
        response = client.post('/api/v1/ethereum/estimate-gas', headers=AUTH, json={
            'contractId': compiled_contract,
            'deployerWalletAddress': BUYER_ADDRESS,
        })
        assert response.status_code == 502
        assert response.get_json()['category'] == 'gas_estimation_failed'

    def test_confirmed(self, client, deployed_contract, record_store):
        response = client.get(f'/api/v1/ethereum/{CONTRACT_ADDRESS}/confirmed', headers=AUTH)
        assert response.get_json()['confirmed'] is True
        assert record_store.get(deployed_contract).contract_status == ContractStatus.CONFIRMED

    def test_confirmed_invalid_address(self, client):
        response = client.get('/api/v1/ethereum/0x1234/confirmed', headers=AUTH)
        assert response.status_code == 400
        assert response.get_json()['category'] == 'invalid_address'

    def test_receipt(self, client):
        response = client.get(f'/api/v1/ethereum/transaction/{TX_HASH}/receipt', headers=AUTH)
        assert response.status_code == 200
        assert response.get_json()['contractAddress'] == CONTRACT_ADDRESS

    def test_pending_receipt(self, client, mock_w3):
        mock_w3.eth.get_transaction_receipt.side_effect = TransactionNotFound('not mined')
        response = client.get(f'/api/v1/ethereum/transaction/{TX_HASH}/receipt', headers=AUTH)
        assert response.status_code == 204

    def test_balance(self, client):
        response = client.get(f'/api/v1/ethereum/{BUYER_ADDRESS}/balance', headers=AUTH)
        assert response.get_json()['balance'] == '1'

    def test_balance_node_error(self, client, mock_w3):
        mock_w3.eth.get_balance.side_effect = Web3RPCError('header not found')
        response = client.get(f'/api/v1/ethereum/{BUYER_ADDRESS}/balance', headers=AUTH)
        assert response.status_code == 503
        assert response.get_json()['category'] == 'ledger_unavailable'

    def test_invoke(self, client, deployed_contract, wallet):
        response = client.post(f'/api/v1/ethereum/{CONTRACT_ADDRESS}/invoke', headers=AUTH, json={
            'functionName': 'setPrice',
            'params': ['250'],
            'valueWei': '0',
            'requestedByWalletAddress': wallet['address'],
        })
        assert response.status_code == 200
        assert response.get_json()['transactionHash'] == TX_HASH

    def test_invoke_unknown_function(self, client, deployed_contract, wallet):
        response = client.post(f'/api/v1/ethereum/{CONTRACT_ADDRESS}/invoke', headers=AUTH, json={
            'functionName': 'selfDestruct',
            'requestedByWalletAddress': wallet['address'],
        })
        assert response.status_code == 400
        assert response.get_json()['category'] == 'invalid_function_call'

    def test_parties_balances_from_stored_abi(self, client, deployed_contract):
        response = client.post('/api/v1/ethereum/parties-balances', headers=AUTH,
                               json={'contractAddress': CONTRACT_ADDRESS})
        parties = response.get_json()['parties']
        # buyer() and seller() both resolve to the zero address on the mocked node
        assert parties == [{'role': 'contract', 'address': CONTRACT_ADDRESS, 'balance': '1'}]

    def test_resolve_addresses(self, client):
        response = client.post('/api/v1/ethereum/resolve-addresses', headers=AUTH,
                               json={'contractAddress': CONTRACT_ADDRESS, 'getterFunctions': ['buyer']})
        assert response.get_json()['addresses'] == {'buyer': '0x' + '0' * 40}
