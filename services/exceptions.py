"""
Error taxonomy for the contract lifecycle and ledger services.

Every error carries a stable ``category`` so callers can decide between retry,
abort and surfacing the message to a user without parsing free text. The
message keeps upstream diagnostics (compiler output, node errors) unmodified.
"""


class ContractDigitizerError(Exception):
    """Base class for every error raised across the service boundary"""
    category = 'internal_error'
    http_status = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self):
        return {'success': False, 'error': self.message, 'category': self.category}


class RecordNotFoundError(ContractDigitizerError):
    category = 'record_not_found'
    http_status = 404

    def __init__(self, record_id):
        super().__init__(f"Contract not found: {record_id}")
        self.record_id = record_id


class UnauthorizedError(ContractDigitizerError):
    category = 'unauthorized'
    http_status = 403


class AlreadyConfirmedError(ContractDigitizerError):
    """Delete or mutation refused because the contract is already on-chain"""
    category = 'already_deployed'
    http_status = 409


class InvalidStatusTransitionError(ContractDigitizerError):
    category = 'invalid_status_transition'
    http_status = 409


class InvalidArtifactError(ContractDigitizerError):
    """Missing or malformed bytecode/ABI, or arguments that cannot be ABI-encoded"""
    category = 'invalid_artifact'
    http_status = 400


class InvalidFunctionCallError(ContractDigitizerError):
    category = 'invalid_function_call'
    http_status = 400


class CompilationFailedError(ContractDigitizerError):
    category = 'compilation_failed'
    http_status = 422

    def __init__(self, diagnostic):
        super().__init__(diagnostic)
        self.diagnostic = diagnostic


class ClauseExtractionError(ContractDigitizerError):
    category = 'clause_extraction_failed'
    http_status = 502


class SolidityGenerationError(ContractDigitizerError):
    category = 'solidity_generation_failed'
    http_status = 502


class GasEstimationFailedError(ContractDigitizerError):
    category = 'gas_estimation_failed'
    http_status = 502


class DeploymentFailedError(ContractDigitizerError):
    category = 'deployment_failed'
    http_status = 502


class InvalidAddressError(ContractDigitizerError):
    category = 'invalid_address'
    http_status = 400

    def __init__(self, address):
        super().__init__(f"Invalid Ethereum address: {address}")
        self.address = address


class EthereumConnectionError(ContractDigitizerError, ConnectionError):
    """Transport failure talking to the ledger node"""
    category = 'ledger_unavailable'
    http_status = 503


class ContractReadError(ContractDigitizerError):
    category = 'contract_read_failed'
    http_status = 502


class WalletCreationError(ContractDigitizerError):
    category = 'wallet_creation_failed'
    http_status = 500


class WalletNotFoundError(ContractDigitizerError):
    category = 'wallet_not_found'
    http_status = 404

    def __init__(self, address, reason=None):
        message = f"Wallet not found: {address}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.address = address
