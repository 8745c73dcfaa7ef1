from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception
from eth_abi import decode
from hexbytes import HexBytes
from requests.exceptions import RequestException
from decimal import Decimal
import logging
import re
import time

import config
from models.deployment import EthereumContractContext, GasEstimate
from services.exceptions import (
    ContractDigitizerError,
    ContractReadError,
    DeploymentFailedError,
    EthereumConnectionError,
    GasEstimationFailedError,
    InvalidAddressError,
    InvalidArtifactError,
    InvalidFunctionCallError,
)
from utils.abi_utils import (
    HEX_ADDRESS_PATTERN,
    address_getters,
    encode_arguments,
    encode_function_call,
    find_function_definition,
)

logger = logging.getLogger(__name__)

# Errors raised by the HTTP provider when the node cannot be reached
TRANSPORT_ERRORS = (RequestException, OSError)

HEX_PATTERN = re.compile(r'^[0-9a-fA-F]*$')

CONTRACT_ABSENT = 'absent'
CONTRACT_DESTROYED = 'destroyed'
CONTRACT_LIVE = 'live'


def strip_hex_prefix(value):
    value = (value or '').strip()
    if value[:2].lower() == '0x':
        return value[2:]
    return value


class Web3Service:
    """Service for deploying and tracking contracts on the configured Ethereum chain"""

    # Gas limit sent with a transaction, as a multiple of the simulated gas
    GAS_SAFETY_MULTIPLIER = 2

    # Read-only probe declared by self-destructible contracts; a revert means destroyed
    DESTROYED_PROBE = 'isDestroyed'

    def __init__(self, w3=None, rpc_url=None, chain_id=None,
                 receipt_attempts=None, receipt_interval=None, sleep=time.sleep):
        if w3 is None:
            rpc_url = rpc_url or config.RPC_URL
            logger.info(f"Connecting to blockchain at: {rpc_url}")
            w3 = Web3(Web3.HTTPProvider(rpc_url))

            # Test connection
            try:
                logger.info(f"Blockchain connected, current block: {w3.eth.block_number}")
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Failed to connect to blockchain at {rpc_url}: {e}")

        self.w3 = w3
        self.chain_id = chain_id if chain_id is not None else config.CHAIN_ID
        self.receipt_attempts = receipt_attempts or config.RECEIPT_POLL_ATTEMPTS
        self.receipt_interval = receipt_interval if receipt_interval is not None else config.RECEIPT_POLL_INTERVAL
        self._sleep = sleep

    def _call_node(self, description, fn, *args):
        """Run a node request, wrapping transport failures"""
        try:
            return fn(*args)
        except TRANSPORT_ERRORS as e:
            logger.error(f"Ledger node unreachable while trying to {description}: {e}")
            raise EthereumConnectionError(f"Failed to {description}: {e}") from e
        except Web3Exception as e:
            logger.error(f"Ledger node rejected request to {description}: {e}")
            raise EthereumConnectionError(f"Failed to {description}: {e}") from e

    @staticmethod
    def is_address(address):
        """Check if a string is a 0x-prefixed 20-byte hex address"""
        return isinstance(address, str) and bool(HEX_ADDRESS_PATTERN.match(address))

    def _require_address(self, address):
        if not self.is_address(address):
            raise InvalidAddressError(address)
        return Web3.to_checksum_address(address)

    # ============================================================================
    # Deployment
    # ============================================================================

    def build_deployment_context(self, bytecode, args):
        """
        Validate contract binary and ABI-encode constructor arguments

        Args:
            bytecode (str): compiled contract binary, with or without 0x
            args (list): typed arguments from utils.abi_utils

        Returns:
            EthereumContractContext: binary and encoded constructor, both without 0x
        """
        if not bytecode or not str(bytecode).strip():
            raise InvalidArtifactError("Contract binary must not be null or empty")

        binary = strip_hex_prefix(str(bytecode))
        if not binary or len(binary) % 2 or not HEX_PATTERN.match(binary):
            raise InvalidArtifactError("Contract binary is not valid hex (unlinked libraries?)")

        encoded_constructor = encode_arguments(args)
        return EthereumContractContext(binary, encoded_constructor)

    def get_nonce(self, address):
        """Pending transaction count for an account"""
        checksum = self._require_address(address)
        return self._call_node(f"fetch nonce for {address}", self.w3.eth.get_transaction_count, checksum, 'pending')

    def estimate_gas(self, from_address, nonce, to, value, data):
        """
        Fetch the gas price and simulate a transaction

        Returns:
            GasEstimate: (gas_price, simulated gas * GAS_SAFETY_MULTIPLIER)
        """
        gas_price = self._call_node('fetch gas price', lambda: self.w3.eth.gas_price)

        tx = {
            'from': Web3.to_checksum_address(from_address),
            'nonce': nonce,
            'value': value or 0,
            'data': data,
        }
        if to:
            tx['to'] = Web3.to_checksum_address(to)

        try:
            simulated_gas = self.w3.eth.estimate_gas(tx)
        except TRANSPORT_ERRORS as e:
            raise EthereumConnectionError(f"Failed to estimate gas: {e}") from e
        except Exception as e:
            logger.error(f"Gas estimation failed: {e}")
            raise GasEstimationFailedError(f"Gas estimation error: {e}") from e

        if not simulated_gas:
            raise GasEstimationFailedError("Gas estimation returned zero gas")

        gas_limit = int(simulated_gas) * self.GAS_SAFETY_MULTIPLIER
        logger.info(f"Estimated gas {simulated_gas}, using limit {gas_limit} at price {gas_price}")
        return GasEstimate(int(gas_price), gas_limit)

    def _sign_and_send(self, tx, signer):
        signed_tx = signer.sign_transaction(tx)
        # Handle both old and new eth-account versions
        raw_tx = getattr(signed_tx, 'raw_transaction', None) or getattr(signed_tx, 'rawTransaction', None)
        if not raw_tx:
            raise AttributeError("SignedTransaction object has no raw_transaction or rawTransaction attribute")
        return Web3.to_hex(self.w3.eth.send_raw_transaction(raw_tx))

    def deploy(self, bytecode, encoded_constructor, signer, cancel_event=None):
        """
        Deploy a compiled contract and wait for its receipt

        Args:
            bytecode (str): contract binary
            encoded_constructor (str): ABI-encoded constructor arguments
            signer (LocalAccount): eth-account signer paying for the deployment
            cancel_event (threading.Event): optional, aborts receipt polling when set

        Returns:
            str: address of the new contract
        """
        binary = strip_hex_prefix(bytecode)
        if not binary:
            raise DeploymentFailedError("Contract binary must not be null or empty")

        data = '0x' + binary + strip_hex_prefix(encoded_constructor)
        sender = signer.address
        nonce = self.get_nonce(sender)
        estimate = self.estimate_gas(sender, nonce, None, 0, data)

        tx = {
            'from': sender,
            'nonce': nonce,
            'gas': estimate.gas_limit,
            'gasPrice': estimate.gas_price,
            'value': 0,
            'data': data,
            'chainId': self.chain_id,
        }

        logger.info(f"Deploying contract from {sender} with gasPrice={estimate.gas_price} gasLimit={estimate.gas_limit}")
        try:
            tx_hash = self._sign_and_send(tx, signer)
        except Exception as e:
            logger.error(f"Contract deployment failed: {e}")
            raise DeploymentFailedError(f"Contract deployment failed: {e}") from e

        logger.info(f"Deployment transaction sent with hash {tx_hash}")
        receipt = self.wait_for_receipt(tx_hash, cancel_event=cancel_event)

        if receipt.get('status') == 0:
            raise DeploymentFailedError(f"Deployment transaction {tx_hash} reverted")

        contract_address = receipt.get('contractAddress')
        if not contract_address:
            raise DeploymentFailedError(f"Receipt for {tx_hash} carries no contract address")

        logger.info(f"Contract deployed at address {contract_address}")
        return contract_address

    def wait_for_receipt(self, tx_hash, cancel_event=None):
        """Poll for a receipt a bounded number of times"""
        for attempt in range(1, self.receipt_attempts + 1):
            try:
                receipt = self.get_transaction_receipt(tx_hash)
            except EthereumConnectionError as e:
                logger.warning(f"Receipt poll {attempt}/{self.receipt_attempts} for {tx_hash} failed: {e}")
                receipt = None

            if receipt is not None:
                return receipt
            if attempt == self.receipt_attempts:
                break

            if cancel_event is not None:
                if cancel_event.wait(self.receipt_interval):
                    raise DeploymentFailedError(f"receipt polling cancelled for {tx_hash}")
            else:
                self._sleep(self.receipt_interval)

        logger.error(f"No receipt for {tx_hash} after {self.receipt_attempts} attempts")
        raise DeploymentFailedError(f"receipt not found for transaction {tx_hash}")

    def get_transaction_receipt(self, tx_hash):
        """Receipt for a transaction, or None while it is still pending"""
        if not tx_hash or not str(tx_hash).strip():
            raise ValueError("Transaction hash must not be empty")
        try:
            return self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except (Web3Exception,) + TRANSPORT_ERRORS as e:
            raise EthereumConnectionError(f"Failed to get transaction receipt: {e}") from e

    # ============================================================================
    # Contract state
    # ============================================================================

    def get_contract_state(self, address, abi_json=None):
        """
        Classify a deployed address

        Args:
            address (str): contract address
            abi_json (str): the contract's ABI; the isDestroyed probe is only
                sent when the ABI declares it

        Returns:
            str: 'absent' when there is no code, 'destroyed' when the isDestroyed
            probe reverts or answers true, 'live' otherwise
        """
        checksum = self._require_address(address)
        code = self._call_node(f"read code at {address}", self.w3.eth.get_code, checksum)
        if not code or len(HexBytes(code)) == 0:
            return CONTRACT_ABSENT

        if not abi_json or find_function_definition(abi_json, self.DESTROYED_PROBE) is None:
            return CONTRACT_LIVE

        try:
            result = self.w3.eth.call({'to': checksum, 'data': encode_function_call(self.DESTROYED_PROBE)})
        except ContractLogicError as e:
            logger.info(f"{self.DESTROYED_PROBE} probe reverted on {address}: {e}")
            return CONTRACT_DESTROYED
        except TRANSPORT_ERRORS as e:
            raise EthereumConnectionError(f"Failed to probe contract at {address}: {e}") from e
        except Exception as e:
            logger.debug(f"{self.DESTROYED_PROBE} probe on {address} failed without a revert: {e}")
            return CONTRACT_LIVE

        result = HexBytes(result or b'')
        if len(result) == 32 and int.from_bytes(result, 'big') == 1:
            return CONTRACT_DESTROYED
        return CONTRACT_LIVE

    def does_contract_exist(self, address, abi_json=None):
        """True when code is present and the contract has not been destroyed"""
        return self.get_contract_state(address, abi_json) == CONTRACT_LIVE

    # ============================================================================
    # Interaction
    # ============================================================================

    def invoke_function(self, address, function_name, args, value_wei, signer):
        """Submit a state-changing call and return its transaction hash without waiting"""
        checksum = self._require_address(address)
        data = encode_function_call(function_name, args)
        value_wei = int(value_wei or 0)

        sender = signer.address
        nonce = self.get_nonce(sender)
        estimate = self.estimate_gas(sender, nonce, checksum, value_wei, data)

        tx = {
            'from': sender,
            'to': checksum,
            'nonce': nonce,
            'gas': estimate.gas_limit,
            'gasPrice': estimate.gas_price,
            'value': value_wei,
            'data': data,
            'chainId': self.chain_id,
        }

        try:
            tx_hash = self._sign_and_send(tx, signer)
        except TRANSPORT_ERRORS as e:
            raise EthereumConnectionError(f"Failed to invoke {function_name}: {e}") from e
        except Exception as e:
            logger.error(f"Error invoking {function_name} on {address}: {e}")
            raise InvalidFunctionCallError(f"Failed to invoke {function_name}: {e}") from e

        logger.info(f"Invoked {function_name} on {address}: {tx_hash}")
        return tx_hash

    def resolve_addresses(self, contract_address, getter_names):
        """
        Call zero-argument address getters one by one

        Returns:
            dict: getter name -> checksummed address, or the error text for that getter
        """
        checksum = self._require_address(contract_address)
        resolved = {}
        for getter in getter_names:
            try:
                raw = self.w3.eth.call({'to': checksum, 'data': encode_function_call(getter)})
                (value,) = decode(['address'], bytes(HexBytes(raw)))
                resolved[getter] = Web3.to_checksum_address(value)
            except Exception as e:
                logger.warning(f"Getter {getter} on {contract_address} failed: {e}")
                resolved[getter] = str(e) or e.__class__.__name__
        return resolved

    def get_contract_parties_balances(self, contract_address, abi_json):
        """Balances of the contract and of every address its ABI exposes through a getter"""
        checksum = self._require_address(contract_address)
        try:
            parties = [{'role': 'contract', 'address': checksum, 'balance': self.get_balance(checksum)}]
            for role, address in self.resolve_addresses(checksum, address_getters(abi_json)).items():
                if not self.is_address(address) or int(address, 16) == 0:
                    continue
                parties.append({'role': role, 'address': address, 'balance': self.get_balance(address)})
            return parties
        except ContractDigitizerError as e:
            raise ContractReadError(f"Failed to read contract parties and balances: {e.message}") from e

    def get_balance(self, address):
        """Balance in ether"""
        checksum = self._require_address(address)
        balance_wei = self._call_node(f"fetch balance of {address}", self.w3.eth.get_balance, checksum)
        return Decimal(Web3.from_wei(balance_wei, 'ether'))
