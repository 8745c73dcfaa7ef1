import json
import logging

import solcx
from solcx.exceptions import SolcError, SolcNotInstalled

import config
from models.deployment import CompilationResult
from services.exceptions import CompilationFailedError

logger = logging.getLogger(__name__)


class SolidityCompiler:
    """Compile Solidity source with the solc binary managed by py-solc-x"""

    def __init__(self, solc_version=None, solc_binary=None):
        self.solc_version = solc_version or config.SOLC_VERSION
        self.solc_binary = solc_binary or config.SOLC_BINARY

    def compile(self, source):
        """
        Compile a single Solidity source

        Args:
            source (str): Solidity source text

        Returns:
            CompilationResult: bytecode of the first contract with code, ABI as JSON text
        """
        if not source or not source.strip():
            raise CompilationFailedError("Solidity source is empty")

        try:
            compiled = solcx.compile_source(
                source,
                output_values=['abi', 'bin'],
                solc_version=self.solc_version,
                solc_binary=self.solc_binary,
            )
        except SolcError as e:
            # solc writes its diagnostics to stderr; keep them unmodified
            diagnostic = getattr(e, 'stderr_data', None) or str(e)
            logger.error(f"Solidity compilation failed: {diagnostic}")
            raise CompilationFailedError(diagnostic) from e
        except SolcNotInstalled as e:
            logger.error(f"Solidity compiler not available: {e}")
            raise CompilationFailedError(f"Solidity compiler not available: {e}") from e

        for contract_id, interface in compiled.items():
            bytecode = interface.get('bin') or ''
            if bytecode:
                logger.info(f"Compiled {contract_id} ({len(bytecode) // 2} bytes)")
                return CompilationResult(bytecode, json.dumps(interface.get('abi') or []))

        raise CompilationFailedError("Compiler produced no contract bytecode")
