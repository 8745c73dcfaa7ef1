"""
Contract Status Worker
Background reconciliation of DEPLOYED contracts against the ledger
"""

import logging
import threading

import config
from models.contract import ContractStatus
from services.web3_service import CONTRACT_DESTROYED, CONTRACT_LIVE

logger = logging.getLogger(__name__)


class ContractStatusWorker:
    """Periodically confirms or terminates deployed contracts"""

    def __init__(self, contract_service, record_store, web3_service, app=None, period=None):
        self.contract_service = contract_service
        self.record_store = record_store
        self.web3_service = web3_service
        self.app = app
        self.period = period if period is not None else config.STATUS_POLL_PERIOD

        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread = None

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name='contract-status-worker', daemon=True)
        self._thread.start()
        logger.info(f"Contract status worker started, checking every {self.period}s")

    def stop(self, timeout=None):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Contract status worker stopped")

    def _run(self):
        while not self._stop_event.wait(self.period):
            self.tick()

    def tick(self):
        """Run one check inside the app context; skipped when a check is already running"""
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Previous status check still running, skipping tick")
            return None
        try:
            if self.app is not None:
                with self.app.app_context():
                    return self.check_deployed()
            return self.check_deployed()
        except Exception as e:
            # A failed scan must not stop the worker
            logger.error(f"Contract status check failed: {e}")
            return None
        finally:
            self._tick_lock.release()

    def check_deployed(self):
        """
        Check every DEPLOYED contract once

        Returns:
            dict: contract id -> new status name for the contracts that changed
        """
        changed = {}
        for record in self.record_store.query(status=ContractStatus.DEPLOYED):
            if not record.deployed_address:
                continue
            try:
                state = self.web3_service.get_contract_state(record.deployed_address, record.abi)
                if state == CONTRACT_LIVE:
                    target = ContractStatus.CONFIRMED
                elif state == CONTRACT_DESTROYED:
                    target = ContractStatus.TERMINATED
                else:
                    continue

                self.contract_service.update_status_by_address(
                    record.deployed_address, target, user_id=record.user_id
                )
                changed[record.id] = target.name
            except Exception as e:
                logger.warning(f"Status check for contract {record.id} at {record.deployed_address} failed: {e}")

        if changed:
            logger.info(f"Status check updated {len(changed)} contracts: {changed}")
        return changed
