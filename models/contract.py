import enum
from datetime import datetime
from . import db


class ContractStatus(enum.Enum):
    """Lifecycle of a digitized contract, in declaration order"""
    UPLOADED = 'UPLOADED'
    CLAUSES_EXTRACTED = 'CLAUSES_EXTRACTED'
    SOLIDITY_PREPARED = 'SOLIDITY_PREPARED'  # source exists, not compiled yet
    SOLIDITY_GENERATED = 'SOLIDITY_GENERATED'  # binary + abi are current
    DEPLOYED = 'DEPLOYED'
    CONFIRMED = 'CONFIRMED'
    TERMINATED = 'TERMINATED'

    @property
    def rank(self):
        # CONFIRMED and TERMINATED share a rank: both are terminal outcomes of DEPLOYED
        if self is ContractStatus.TERMINATED:
            return ContractStatus.CONFIRMED.rank
        return list(ContractStatus).index(self)

    def is_deployed(self):
        """True for DEPLOYED and everything after it"""
        return self.rank >= ContractStatus.DEPLOYED.rank

    @classmethod
    def parse(cls, value):
        """Accept either a ContractStatus or its symbolic name"""
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ValueError(f"Unknown contract status: {value}")


class ContractRecord(db.Model):
    """A legal contract moving from uploaded text to an on-chain instance"""
    __tablename__ = 'digitalized_contracts'

    # Persisted field name -> column attribute
    FIELD_MAP = {
        'id': 'id',
        'userId': 'user_id',
        'contractText': 'contract_text',
        'status': 'status',
        'extractedClauses': 'extracted_clauses',
        'soliditySource': 'solidity_source',
        'binary': 'binary',
        'abi': 'abi',
        'deployedAddress': 'deployed_address',
    }

    id = db.Column(db.String(36), primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    contract_text = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(32), nullable=False, default=ContractStatus.UPLOADED.name)  # symbolic name, never a number
    extracted_clauses = db.Column(db.JSON, nullable=True)
    solidity_source = db.Column(db.Text, nullable=True)
    binary = db.Column(db.Text, nullable=True)
    abi = db.Column(db.Text, nullable=True)  # JSON text as produced by the compiler
    deployed_address = db.Column(db.String(42), nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def contract_status(self):
        return ContractStatus.parse(self.status)

    def has_artifact(self):
        return bool(self.binary) and bool(self.abi)

    def to_dict(self):
        return {field: getattr(self, column) for field, column in self.FIELD_MAP.items()}

    def __repr__(self):
        return f'<ContractRecord {self.id} {self.status}>'
