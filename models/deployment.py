"""
Ephemeral deployment values passed between the orchestrator, the ledger client
and the compiler. None of these are persisted.
"""

from collections import namedtuple

# Contract binary and ABI-encoded constructor arguments, both hex without 0x
EthereumContractContext = namedtuple('EthereumContractContext', ['binary', 'encoded_constructor'])

# An EthereumContractContext paired with the record it was built from
DeploymentContext = namedtuple('DeploymentContext', ['record_id', 'user_id', 'eth_context'])

# Wei values; gas_limit already includes the safety margin
GasEstimate = namedtuple('GasEstimate', ['gas_price', 'gas_limit'])

# Compiler output: bytecode hex without 0x, abi as JSON text
CompilationResult = namedtuple('CompilationResult', ['bytecode', 'abi'])
