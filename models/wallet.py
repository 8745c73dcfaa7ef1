from decimal import Decimal

# Balance reported when the ledger could not be reached for a wallet
BALANCE_UNAVAILABLE = Decimal(-1)


class WalletInfo:
    """A signing wallet backed by an encrypted keystore file"""

    def __init__(self, label, address, balance, keystore_file):
        self.label = label
        self.address = address
        self.balance = balance
        self._keystore_file = keystore_file  # internal, never serialized

    @property
    def keystore_file(self):
        return self._keystore_file

    def to_dict(self):
        return {
            'label': self.label,
            'address': self.address,
            'balance': str(self.balance) if self.balance is not None else None,
        }

    def __eq__(self, other):
        if not isinstance(other, WalletInfo):
            return NotImplemented
        return (self.label, self.address, self.keystore_file) == (other.label, other.address, other.keystore_file)

    def __hash__(self):
        return hash((self.label, self.address, self.keystore_file))

    def __repr__(self):
        return f'<WalletInfo {self.label} {self.address} balance={self.balance}>'
