# Legal Contract Digitizer configuration
# Every value can be overridden from the environment (or a .env file loaded by the shell).

import os

# Ledger
RPC_URL = os.environ.get('RPC_URL', 'http://127.0.0.1:8545')
CHAIN_ID = int(os.environ.get('CHAIN_ID', '1337'))

# Receipt polling: 40 attempts * 1.5s = 60s ceiling
RECEIPT_POLL_ATTEMPTS = 40
RECEIPT_POLL_INTERVAL = 1.5

# Wallet keystore
WALLET_KEYSTORE_DIR = os.environ.get('WALLET_KEYSTORE_DIR', 'ethWallets')
WALLET_KEYSTORE_PASSWORD = os.environ.get('WALLET_KEYSTORE_PASSWORD', '')
WALLET_KDF = os.environ.get('WALLET_KDF', 'scrypt')  # 'scrypt' or 'pbkdf2'
WALLET_KDF_ITERATIONS = int(os.environ.get('WALLET_KDF_ITERATIONS', '0')) or None  # None keeps the eth-account default

# Solidity compiler (empty means whatever py-solc-x has selected)
SOLC_VERSION = os.environ.get('SOLC_VERSION') or None
SOLC_BINARY = os.environ.get('SOLC_BINARY') or None

# Confirmation poller
STATUS_POLL_PERIOD = float(os.environ.get('STATUS_POLL_PERIOD', '30'))
STATUS_WORKER_ENABLED = os.environ.get('STATUS_WORKER_ENABLED', 'true').lower() in ('1', 'true', 'yes')

# Flask
DATABASE_URL = os.environ.get('DATABASE_URL', 'sqlite:///contracts.db')
SECRET_KEY = os.environ.get('SECRET_KEY', 'change-this-in-production')
FLASK_PORT = int(os.environ.get('FLASK_PORT', '5000'))

# Header set by the authenticating gateway in front of this service
AUTH_USER_HEADER = os.environ.get('AUTH_USER_HEADER', 'X-User-Id')
