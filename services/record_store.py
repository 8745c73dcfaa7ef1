"""
Record Store
Keyed persistence for contract records over Flask-SQLAlchemy
"""

from sqlalchemy import func
import logging

from models import db
from models.contract import ContractRecord, ContractStatus

logger = logging.getLogger(__name__)


def _column_for(field):
    column = ContractRecord.FIELD_MAP.get(field)
    if column is None:
        if field in ContractRecord.FIELD_MAP.values():
            return field
        raise KeyError(f"Unknown contract field: {field}")
    return column


def _stored_value(column, value):
    if column == 'status' and value is not None:
        return ContractStatus.parse(value).name
    return value


class ContractRecordStore:
    """get / set / update / query / delete for ContractRecord rows"""

    def get(self, record_id):
        return db.session.get(ContractRecord, record_id)

    def set(self, record_id, record_dict):
        """Create or replace a record from persisted field names"""
        try:
            record = db.session.get(ContractRecord, record_id) or ContractRecord(id=record_id)
            for field, value in record_dict.items():
                column = _column_for(field)
                if column == 'id':
                    continue
                setattr(record, column, _stored_value(column, value))
            db.session.add(record)
            db.session.commit()
            return record
        except Exception as e:
            logger.error(f"Error saving contract {record_id}: {e}")
            db.session.rollback()
            raise

    def update(self, record_id, field_map, expected_status=None):
        """
        Apply a partial update as one UPDATE statement

        Args:
            record_id (str): record to update
            field_map (dict): persisted field name -> new value
            expected_status (ContractStatus): only update while the stored status still equals this

        Returns:
            bool: True if a row was updated
        """
        values = {}
        for field, value in field_map.items():
            column = _column_for(field)
            if column == 'id':
                raise KeyError("Record id is immutable")
            values[column] = _stored_value(column, value)

        query = ContractRecord.query.filter(ContractRecord.id == record_id)
        if expected_status is not None:
            query = query.filter(ContractRecord.status == ContractStatus.parse(expected_status).name)

        try:
            updated = query.update(values)
            db.session.commit()
        except Exception as e:
            logger.error(f"Error updating contract {record_id}: {e}")
            db.session.rollback()
            raise

        return updated == 1

    def query(self, **field_equals):
        query = ContractRecord.query
        for field, value in field_equals.items():
            column = _column_for(field)
            query = query.filter(getattr(ContractRecord, column) == _stored_value(column, value))
        return query.order_by(ContractRecord.created_at).all()

    def find_by_deployed_address(self, address):
        """Records deployed at an address, compared case-insensitively"""
        return ContractRecord.query.filter(
            func.lower(ContractRecord.deployed_address) == (address or '').lower()
        ).all()

    def delete(self, record_id, expected_status=None):
        """Delete a record, optionally only while it still has the expected status"""
        query = ContractRecord.query.filter(ContractRecord.id == record_id)
        if expected_status is not None:
            query = query.filter(ContractRecord.status == ContractStatus.parse(expected_status).name)

        try:
            deleted = query.delete()
            db.session.commit()
        except Exception as e:
            logger.error(f"Error deleting contract {record_id}: {e}")
            db.session.rollback()
            raise

        return deleted == 1
