# Models package
from flask_sqlalchemy import SQLAlchemy

# Create a single database instance for all models
db = SQLAlchemy()

# Import all models
from .contract import ContractRecord, ContractStatus
from .deployment import CompilationResult, DeploymentContext, EthereumContractContext, GasEstimate
from .wallet import WalletInfo
