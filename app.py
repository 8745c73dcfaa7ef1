from flask import Flask
import logging

import config

# Import models
from models import db

# Import utilities
from utils.auth_utils import get_current_user_id, load_user_from_gateway

# Import services
from services.compiler_service import SolidityCompiler
from services.contract_service import ContractService
from services.contract_status_worker import ContractStatusWorker
from services.record_store import ContractRecordStore
from services.wallet_service import KeystoreDirectory, WalletManager
from services.web3_service import Web3Service

# Import routes
from routes.contracts import contracts_bp
from routes.errors import register_error_handlers
from routes.ethereum import ethereum_bp

logger = logging.getLogger(__name__)


def create_app(test_config=None, web3_service=None, compiler=None, wallet_manager=None, ai_client=None):
    """
    Create the Flask app and wire the contract lifecycle services

    Args:
        test_config (dict): overrides for app.config
        web3_service, compiler, wallet_manager, ai_client: optional replacements for the default services
    """
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.SECRET_KEY
    app.config['SQLALCHEMY_DATABASE_URI'] = config.DATABASE_URL
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['STATUS_WORKER_ENABLED'] = config.STATUS_WORKER_ENABLED
    app.config['STATUS_POLL_PERIOD'] = config.STATUS_POLL_PERIOD
    app.config['WALLET_KEYSTORE_DIR'] = config.WALLET_KEYSTORE_DIR
    app.config['WALLET_KEYSTORE_PASSWORD'] = config.WALLET_KEYSTORE_PASSWORD
    app.config['WALLET_KDF'] = config.WALLET_KDF
    app.config['WALLET_KDF_ITERATIONS'] = config.WALLET_KDF_ITERATIONS
    if test_config:
        app.config.update(test_config)

    # Initialize database
    db.init_app(app)

    web3_service = web3_service or Web3Service()
    compiler = compiler or SolidityCompiler()
    wallet_manager = wallet_manager or WalletManager(
        keystore=KeystoreDirectory(app.config['WALLET_KEYSTORE_DIR']),
        password=app.config['WALLET_KEYSTORE_PASSWORD'],
        balance_fetcher=web3_service.get_balance,
        kdf=app.config['WALLET_KDF'],
        kdf_iterations=app.config['WALLET_KDF_ITERATIONS'],
    )
    record_store = ContractRecordStore()
    contract_service = ContractService(record_store, web3_service, compiler, get_current_user_id, ai_client=ai_client)
    worker = ContractStatusWorker(contract_service, record_store, web3_service,
                                  app=app, period=app.config['STATUS_POLL_PERIOD'])

    app.extensions['contract_digitizer'] = {
        'web3_service': web3_service,
        'compiler': compiler,
        'wallet_manager': wallet_manager,
        'record_store': record_store,
        'contract_service': contract_service,
        'status_worker': worker,
    }

    app.before_request(load_user_from_gateway)

    # Register blueprints
    app.register_blueprint(contracts_bp)
    app.register_blueprint(ethereum_bp)
    register_error_handlers(app)

    with app.app_context():
        db.create_all()

    if app.config['STATUS_WORKER_ENABLED']:
        worker.start()

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=config.FLASK_PORT)
