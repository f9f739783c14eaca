"""
Transaction Repository - append/delete access to the per-user ledger.
Every method accepts an optional session so callers can batch work.
"""

import logging
import uuid
from typing import Optional, List
from sqlmodel import Session, select

from db_engine import get_engine
from models import Transaction

logger = logging.getLogger(__name__)


class TransactionRepository:
    """Repository for ledger CRUD operations."""

    @staticmethod
    def add(transaction: Transaction, session: Optional[Session] = None) -> Optional[Transaction]:
        """
        Insert a ledger row and assign its id.

        Args:
            transaction: Transaction to insert (its id is ignored and replaced)
            session: Optional existing session for transaction reuse

        Returns:
            The stored Transaction, or None if the insert failed
        """
        def _create_transaction(sess: Session) -> Optional[Transaction]:
            row = Transaction.model_validate(transaction.model_dump())
            row.id = str(uuid.uuid4())
            try:
                sess.add(row)
                sess.commit()
                sess.refresh(row)
                return row
            except Exception as e:
                sess.rollback()
                logger.error(f"Transaction insert failed for asset {transaction.asset_id}: {e}")
                return None

        if session is not None:
            return _create_transaction(session)
        else:
            with Session(get_engine()) as session:
                return _create_transaction(session)

    @staticmethod
    def get_by_user(
        user_id: str,
        asset_id: Optional[str] = None,
        session: Optional[Session] = None
    ) -> List[Transaction]:
        """
        Retrieve a user's transactions, newest first by (date, created_at).

        Args:
            user_id: Owner of the ledger
            asset_id: Optional asset filter
            session: Optional existing session for transaction reuse

        Returns:
            List of Transaction objects
        """
        def _get_by_user(sess: Session) -> List[Transaction]:
            statement = select(Transaction).where(Transaction.user_id == user_id)
            if asset_id:
                statement = statement.where(Transaction.asset_id == asset_id)
            statement = statement.order_by(Transaction.date.desc(), Transaction.created_at.desc())
            results = sess.exec(statement)
            return list(results.all())

        if session is not None:
            return _get_by_user(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_user(session)

    @staticmethod
    def get_by_id(transaction_id: str, session: Optional[Session] = None) -> Optional[Transaction]:
        """Retrieve a transaction by its ID."""
        def _get_by_id(sess: Session) -> Optional[Transaction]:
            return sess.get(Transaction, transaction_id)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def delete(transaction_id: str, session: Optional[Session] = None) -> bool:
        """
        Delete a transaction by its ID.

        Returns:
            True if a row was deleted, False otherwise
        """
        def _delete(sess: Session) -> bool:
            try:
                transaction = sess.get(Transaction, transaction_id)
                if transaction:
                    sess.delete(transaction)
                    sess.commit()
                    return True
                return False
            except Exception as e:
                sess.rollback()
                logger.warning(f"Transaction delete failed for {transaction_id}: {e}")
                return False

        if session is not None:
            return _delete(session)
        else:
            with Session(get_engine()) as session:
                return _delete(session)

    @staticmethod
    def delete_by_asset(user_id: str, asset_id: str, session: Optional[Session] = None) -> int:
        """
        Delete all of a user's transactions for one asset.
        Used when the asset itself is deleted.

        Returns:
            Number of transactions deleted
        """
        def _delete_by_asset(sess: Session) -> int:
            statement = select(Transaction).where(
                Transaction.user_id == user_id,
                Transaction.asset_id == asset_id
            )
            transactions = sess.exec(statement).all()
            count = 0
            for tx in transactions:
                sess.delete(tx)
                count += 1
            sess.commit()
            return count

        if session is not None:
            return _delete_by_asset(session)
        else:
            with Session(get_engine()) as session:
                return _delete_by_asset(session)
