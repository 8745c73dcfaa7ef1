from eth_account import Account
from eth_utils import to_checksum_address
import json
import logging
import os
import re
import threading
import time

import config
from models.wallet import BALANCE_UNAVAILABLE, WalletInfo
from services.exceptions import WalletCreationError, WalletNotFoundError

logger = logging.getLogger(__name__)

LABEL_PATTERN = re.compile(r'^[A-Za-z0-9_-]+$')
WALLET_FILE_PATTERN = re.compile(r'^(?P<label>[A-Za-z0-9_-]+)-(?P<address>[0-9a-fA-F]{40})\.json$')


class KeystoreDirectory:
    """Flat directory of keystore files"""

    def __init__(self, path):
        self.path = path

    def _full_path(self, name):
        return os.path.join(self.path, name)

    def ensure_exists(self):
        os.makedirs(self.path, exist_ok=True)

    def list_names(self):
        if not os.path.isdir(self.path):
            return []
        return sorted(os.listdir(self.path))

    def read(self, name):
        with open(self._full_path(name), 'r') as f:
            return f.read()

    def write(self, name, content):
        self.ensure_exists()
        with open(self._full_path(name), 'x') as f:
            f.write(content)

    def exists(self, name):
        return os.path.exists(self._full_path(name))

    def rename(self, source, target):
        """Rename within the directory, refusing to overwrite"""
        if self.exists(target):
            raise FileExistsError(f"Keystore file already exists: {target}")
        os.rename(self._full_path(source), self._full_path(target))

    def remove(self, name):
        os.remove(self._full_path(name))


class WalletManager:
    """Manages encrypted signing wallets and a fingerprinted cache of them"""

    def __init__(self, keystore=None, password=None, balance_fetcher=None,
                 clock=time.time, kdf=None, kdf_iterations=None):
        self.keystore = keystore or KeystoreDirectory(config.WALLET_KEYSTORE_DIR)
        self.password = password if password is not None else config.WALLET_KEYSTORE_PASSWORD
        self.balance_fetcher = balance_fetcher
        self.clock = clock
        self.kdf = kdf or config.WALLET_KDF
        self.kdf_iterations = kdf_iterations

        self._lock = threading.Lock()
        self._cache = None
        self._cached_names = []
        self._fingerprint = None

    def _fetch_balance(self, address):
        if self.balance_fetcher is None:
            return BALANCE_UNAVAILABLE
        try:
            return self.balance_fetcher(address)
        except Exception as e:
            logger.warning(f"Could not fetch balance for {address}: {e}")
            return BALANCE_UNAVAILABLE

    def _wallet_files(self):
        return sorted(name for name in self.keystore.list_names() if WALLET_FILE_PATTERN.match(name))

    def _wallet_info(self, name):
        match = WALLET_FILE_PATTERN.match(name)
        address = to_checksum_address('0x' + match.group('address'))
        return WalletInfo(match.group('label'), address, self._fetch_balance(address), name)

    def create_wallet(self, label):
        """
        Generate a key pair and store it as an encrypted keystore file

        Args:
            label (str): human readable name, letters, digits, '_' and '-'

        Returns:
            WalletInfo: the new wallet with its current balance
        """
        if not label or not LABEL_PATTERN.match(label):
            raise WalletCreationError(f"Invalid wallet label: {label!r}")

        temp_name = f".{label}-{int(self.clock() * 1000)}.tmp"
        temp_written = False
        try:
            account = Account.create()
            keystore_json = Account.encrypt(account.key, self.password,
                                            kdf=self.kdf, iterations=self.kdf_iterations)

            self.keystore.write(temp_name, json.dumps(keystore_json))
            temp_written = True

            file_name = f"{label}-{account.address[2:].lower()}.json"
            self.keystore.rename(temp_name, file_name)
            temp_written = False
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Failed to create wallet '{label}': {e}")
            if temp_written:
                self._discard(temp_name)
            raise WalletCreationError(f"Failed to create wallet '{label}': {e}") from e

        wallet = WalletInfo(label, account.address, self._fetch_balance(account.address), file_name)
        logger.info(f"Created wallet '{label}' at {account.address}")

        with self._lock:
            if self._cache is not None:
                self._cache = self._cache + [wallet]
                self._cached_names = sorted(self._cached_names + [file_name])
                self._fingerprint = '|'.join(self._cached_names)

        return wallet

    def _discard(self, name):
        try:
            self.keystore.remove(name)
        except OSError as e:
            logger.error(f"Failed to remove temporary keystore file {name}: {e}")

    def list_wallets(self):
        """All wallets; balances are only re-fetched when the set of keystore files changed"""
        names = self._wallet_files()
        fingerprint = '|'.join(names)

        with self._lock:
            if self._cache is not None and fingerprint == self._fingerprint:
                return list(self._cache)

        logger.info(f"Keystore directory changed, rescanning {len(names)} wallet files")
        wallets = [self._wallet_info(name) for name in names]

        with self._lock:
            self._cache = wallets
            self._cached_names = names
            self._fingerprint = fingerprint

        return list(wallets)

    def load_credentials(self, address):
        """
        Decrypt the wallet for an address

        Returns:
            LocalAccount: signer usable with Web3Service.deploy / invoke_function
        """
        with self._lock:
            wallets = list(self._cache) if self._cache is not None else None
        if wallets is None:
            wallets = self.list_wallets()

        wanted = (address or '').lower()
        wallet = next((w for w in wallets if w.address.lower() == wanted), None)
        if wallet is None:
            raise WalletNotFoundError(address)

        try:
            keystore_json = json.loads(self.keystore.read(wallet.keystore_file))
            private_key = Account.decrypt(keystore_json, self.password)
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to load credentials for {address}: {e}")
            raise WalletNotFoundError(address, reason=str(e)) from e

        return Account.from_key(private_key)
