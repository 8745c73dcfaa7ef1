"""
Contract Service
Drives a digitized contract from uploaded text to a confirmed on-chain instance
"""

import logging
import uuid

from models.contract import ContractStatus
from models.deployment import DeploymentContext
from services.exceptions import (
    AlreadyConfirmedError,
    ClauseExtractionError,
    ContractDigitizerError,
    InvalidAddressError,
    InvalidArtifactError,
    InvalidFunctionCallError,
    InvalidStatusTransitionError,
    RecordNotFoundError,
    SolidityGenerationError,
    UnauthorizedError,
)
from services.web3_service import CONTRACT_ABSENT, CONTRACT_DESTROYED, CONTRACT_LIVE, Web3Service
from utils.abi_utils import ARG_TYPES, find_function_definition

logger = logging.getLogger(__name__)

# Status changes accepted through update_status_by_address
ALLOWED_TRANSITIONS = {
    ContractStatus.DEPLOYED: (ContractStatus.CONFIRMED, ContractStatus.TERMINATED),
    ContractStatus.CONFIRMED: (ContractStatus.CONFIRMED, ContractStatus.TERMINATED),
    ContractStatus.TERMINATED: (ContractStatus.TERMINATED,),
}


def _advance(current, target):
    """Never move a record backwards while refreshing derived data"""
    return target if target.rank > current.rank else current


class ContractService:
    """Lifecycle orchestrator for digitized contracts"""

    def __init__(self, record_store, web3_service, compiler, current_user, ai_client=None):
        self.store = record_store
        self.web3_service = web3_service
        self.compiler = compiler
        self.current_user = current_user
        self.ai_client = ai_client

    # ============================================================================
    # Ownership
    # ============================================================================

    def _require_user(self):
        user_id = self.current_user()
        if not user_id:
            raise UnauthorizedError("Authentication required")
        return user_id

    def _check_owner(self, record, user_id=None):
        caller = user_id if user_id is not None else self._require_user()
        if record.user_id != caller:
            logger.warning(f"User {caller} denied access to contract {record.id}")
            raise UnauthorizedError(f"Access denied to contract {record.id}")

    def _load_owned(self, record_id, user_id=None):
        record = self.store.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        self._check_owner(record, user_id)
        return record

    def _ensure_mutable(self, record):
        if record.contract_status.is_deployed():
            raise AlreadyConfirmedError(f"Contract {record.id} is already deployed and can no longer be changed")

    def _lost_race(self, record_id):
        """Error for a compare-and-set that found the record changed"""
        current = self.store.get(record_id)
        if current is None:
            return RecordNotFoundError(record_id)
        if current.contract_status.is_deployed():
            return AlreadyConfirmedError(f"Contract {record_id} was deployed concurrently")
        return InvalidStatusTransitionError(f"Contract {record_id} was modified concurrently (now {current.status})")

    def _guarded_update(self, record, fields):
        if not self.store.update(record.id, fields, expected_status=record.contract_status):
            raise self._lost_race(record.id)

    # ============================================================================
    # Records
    # ============================================================================

    def save_uploaded_contract(self, text):
        """Store contract text for the current user; returns the new record id"""
        user_id = self._require_user()
        if not text or not text.strip():
            raise InvalidArtifactError("Contract text must not be empty")

        record_id = str(uuid.uuid4())
        self.store.set(record_id, {
            'userId': user_id,
            'contractText': text,
            'status': ContractStatus.UPLOADED,
        })
        logger.info(f"Saved uploaded contract {record_id} for user {user_id}")
        return record_id

    def get_contract(self, record_id):
        return self._load_owned(record_id)

    def list_contracts_for_user(self):
        return self.store.query(userId=self._require_user())

    def get_contract_by_address(self, address):
        """The caller's record deployed at an address"""
        if not Web3Service.is_address(address):
            raise InvalidAddressError(address)
        records = self.store.find_by_deployed_address(address)
        if not records:
            raise RecordNotFoundError(address)
        if len(records) > 1:
            logger.error(f"{len(records)} contracts share deployed address {address}, using {records[0].id}")
        record = records[0]
        self._check_owner(record)
        return record

    def delete_if_not_deployed(self, record_id):
        record = self._load_owned(record_id)
        self._ensure_mutable(record)
        if not self.store.delete(record_id, expected_status=record.contract_status):
            raise self._lost_race(record_id)
        logger.info(f"Deleted contract {record_id}")

    # ============================================================================
    # Text -> clauses -> Solidity -> artifact
    # ============================================================================

    def extract_clauses(self, record_id):
        """Clauses of the contract text, extracted once and cached on the record"""
        record = self._load_owned(record_id)
        if record.extracted_clauses:
            return list(record.extracted_clauses)

        self._ensure_mutable(record)
        if self.ai_client is None:
            raise ClauseExtractionError("No clause extraction service configured")

        try:
            clauses = self.ai_client.extract_clauses(record.contract_text)
        except ContractDigitizerError:
            raise
        except Exception as e:
            logger.error(f"Clause extraction failed for {record_id}: {e}")
            raise ClauseExtractionError(f"Clause extraction failed: {e}") from e

        clauses = [clause.strip() for clause in (clauses or []) if isinstance(clause, str) and clause.strip()]
        if not clauses:
            raise ClauseExtractionError(f"No clauses could be extracted from contract {record_id}")

        self._guarded_update(record, {
            'extractedClauses': clauses,
            'status': _advance(record.contract_status, ContractStatus.CLAUSES_EXTRACTED),
        })
        logger.info(f"Extracted {len(clauses)} clauses for contract {record_id}")
        return clauses

    def generate_solidity(self, record_id):
        """Generate (or reuse) Solidity source from the clauses, then compile it"""
        record = self._load_owned(record_id)
        if not record.extracted_clauses:
            raise ClauseExtractionError(f"Clauses must be extracted before generating Solidity for {record_id}")
        self._ensure_mutable(record)

        if not record.solidity_source:
            if self.ai_client is None:
                raise SolidityGenerationError("No Solidity generation service configured")
            try:
                source = self.ai_client.generate_solidity(list(record.extracted_clauses))
            except ContractDigitizerError:
                raise
            except Exception as e:
                logger.error(f"Solidity generation failed for {record_id}: {e}")
                raise SolidityGenerationError(f"Solidity generation failed: {e}") from e

            if not source or not source.strip():
                raise SolidityGenerationError(f"Generated Solidity for {record_id} is empty")

            self._guarded_update(record, {
                'soliditySource': source,
                'status': _advance(record.contract_status, ContractStatus.SOLIDITY_PREPARED),
            })
            logger.info(f"Generated Solidity for contract {record_id}")

        return self.compile_solidity(record_id)

    def compile_solidity(self, record_id):
        """Compile the stored source and persist binary and ABI together"""
        record = self._load_owned(record_id)
        self._ensure_mutable(record)
        if not record.solidity_source:
            raise InvalidArtifactError(f"Contract {record_id} has no Solidity source to compile")

        result = self.compiler.compile(record.solidity_source)

        self._guarded_update(record, {
            'binary': result.bytecode,
            'abi': result.abi,
            'status': _advance(record.contract_status, ContractStatus.SOLIDITY_GENERATED),
        })
        logger.info(f"Compiled contract {record_id}")
        return self.store.get(record_id)

    # ============================================================================
    # Deployment
    # ============================================================================

    def prepare_deployment_context(self, record_id, constructor_args):
        record = self._load_owned(record_id)
        if not record.has_artifact():
            raise InvalidArtifactError(f"Contract {record_id} has no compiled bytecode and ABI")
        eth_context = self.web3_service.build_deployment_context(record.binary, constructor_args)
        return DeploymentContext(record.id, record.user_id, eth_context)

    def deploy(self, record_id, constructor_args, signer, cancel_event=None):
        """
        Deploy a compiled contract and record its address

        Args:
            record_id (str): contract to deploy
            constructor_args (list): typed constructor arguments
            signer (LocalAccount): wallet paying for the deployment
            cancel_event (threading.Event): optional, aborts receipt polling

        Returns:
            str: the deployed contract address
        """
        record = self._load_owned(record_id)
        if record.contract_status.is_deployed():
            raise AlreadyConfirmedError(f"Contract {record_id} is already deployed at {record.deployed_address}")
        previous_status = record.contract_status

        context = self.prepare_deployment_context(record_id, constructor_args)
        address = self.web3_service.deploy(
            context.eth_context.binary,
            context.eth_context.encoded_constructor,
            signer,
            cancel_event=cancel_event,
        )

        updated = self.store.update(record_id, {
            'status': ContractStatus.DEPLOYED,
            'deployedAddress': address,
        }, expected_status=previous_status)
        if not updated:
            logger.error(f"Contract {record_id} changed during deployment; instance at {address} is orphaned")
            raise AlreadyConfirmedError(
                f"Contract {record_id} changed during deployment; on-chain instance at {address} was not recorded"
            )

        logger.info(f"Contract {record_id} deployed at {address}")
        return address

    def estimate_gas(self, record_id, constructor_args, signer_address):
        context = self.prepare_deployment_context(record_id, constructor_args)
        nonce = self.web3_service.get_nonce(signer_address)
        data = '0x' + context.eth_context.binary + context.eth_context.encoded_constructor
        return self.web3_service.estimate_gas(signer_address, nonce, None, 0, data)

    # ============================================================================
    # Post-deployment
    # ============================================================================

    def update_status_by_address(self, address, new_status, user_id=None):
        """
        Move a deployed contract to CONFIRMED or TERMINATED

        Args:
            address (str): deployed contract address
            new_status (ContractStatus or str): target status
            user_id (str): owner to act for; defaults to the current user
        """
        try:
            new_status = ContractStatus.parse(new_status)
        except ValueError as e:
            raise InvalidStatusTransitionError(str(e)) from e

        records = self.store.find_by_deployed_address(address)
        if not records:
            raise RecordNotFoundError(address)
        record = records[0]
        self._check_owner(record, user_id)

        current = record.contract_status
        if new_status not in ALLOWED_TRANSITIONS.get(current, ()):
            raise InvalidStatusTransitionError(
                f"Cannot move contract {record.id} from {current.name} to {new_status.name}"
            )
        if new_status == current:
            return record

        if not self.store.update(record.id, {'status': new_status}, expected_status=current):
            raise InvalidStatusTransitionError(f"Contract {record.id} status changed concurrently")

        logger.info(f"Contract {record.id} at {address}: {current.name} -> {new_status.name}")
        return self.store.get(record.id)

    def check_contract_confirmation(self, address):
        """Re-derive CONFIRMED/TERMINATED from the ledger; returns True when the contract is live"""
        record = self.get_contract_by_address(address)
        state = self.web3_service.get_contract_state(address, record.abi)
        current = record.contract_status

        target = None
        if state == CONTRACT_LIVE:
            target = ContractStatus.CONFIRMED
        elif state == CONTRACT_DESTROYED:
            target = ContractStatus.TERMINATED
        elif state == CONTRACT_ABSENT and current == ContractStatus.CONFIRMED:
            target = ContractStatus.TERMINATED

        if target is not None and target in ALLOWED_TRANSITIONS.get(current, ()):
            self.update_status_by_address(address, target, user_id=record.user_id)

        return state == CONTRACT_LIVE

    def invoke_contract_function(self, record_id, function_name, args, value_wei, signer):
        """Submit a call to a function of the deployed contract; returns the transaction hash"""
        record = self._load_owned(record_id)
        if not record.contract_status.is_deployed() or not record.deployed_address:
            raise InvalidArtifactError(f"Contract {record_id} is not deployed")

        definition = find_function_definition(record.abi, function_name) if record.abi else None
        if definition is None:
            raise InvalidFunctionCallError(f"Function {function_name} not found in contract ABI")

        args = list(args or [])
        inputs = definition.get('inputs') or []
        if len(inputs) != len(args):
            raise InvalidFunctionCallError(
                f"{function_name} expects {len(inputs)} arguments, got {len(args)}"
            )
        for position, (expected, arg) in enumerate(zip(inputs, args)):
            expected_type = ARG_TYPES.get(expected.get('type'))
            if expected_type is None:
                raise InvalidFunctionCallError(
                    f"Argument {position} of {function_name} has unsupported ABI type {expected.get('type')}"
                )
            if not isinstance(arg, expected_type):
                raise InvalidFunctionCallError(
                    f"Argument {position} of {function_name} must be {expected.get('type')}, got {arg!r}"
                )

        if value_wei and definition.get('stateMutability') != 'payable':
            raise InvalidFunctionCallError(f"{function_name} is not payable")

        return self.web3_service.invoke_function(record.deployed_address, function_name, args, value_wei, signer)
