from datetime import datetime
from typing import Any, Dict, List, Optional

from psycopg.errors import UniqueViolation
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from credit_core.billing.domain.entities import Account, OperationType, Transaction
from credit_core.billing.shared.exceptions import AccountNotFoundError, DuplicateGrantError
from credit_core.services.db import Database, dump_json
from credit_core.utils.logger import logger
from .interfaces import BalanceMutation, LedgerStore, subscription_updates
from .mappers import is_uuid, row_to_account, row_to_transaction

IDEMPOTENCY_CONSTRAINT = "credit_transactions_idempotency_key_uniq"

ACCOUNT_COLUMNS = """
    id, credits, stripe_customer_id, stripe_subscription_id,
    subscription_status, subscription_plan, current_period_end
"""

TRANSACTION_COLUMNS = """
    id, user_id, operation_type, amount, balance_before, balance_after,
    metadata, reference_id, idempotency_key, created_at
"""

INSERT_TRANSACTION_SQL = f"""
INSERT INTO credit_transactions (
    user_id, operation_type, amount, balance_before, balance_after,
    metadata, reference_id, idempotency_key
) VALUES (
    :account_id, :operation_type, :amount, :balance_before, :balance_after,
    CAST(:metadata AS jsonb), CAST(:reference_id AS uuid), :idempotency_key
)
RETURNING {TRANSACTION_COLUMNS}
"""


def _is_idempotency_conflict(e: IntegrityError) -> bool:
    if not isinstance(e.orig, UniqueViolation):
        return False
    diag = getattr(e.orig, 'diag', None)
    constraint = getattr(diag, 'constraint_name', None)
    return constraint is None or constraint == IDEMPOTENCY_CONSTRAINT


class PostgresLedgerStore(LedgerStore):
    """Ledger store on the `users` / `credit_transactions` tables.

    Each mutation runs in one database transaction: a single conditional
    UPDATE ... RETURNING on the account row followed by the transaction
    insert. Concurrent deductions on the same row serialise on the row lock,
    and the `credits >= :cost` predicate is re-evaluated against the
    committed value, so two requests can never both spend the same credits.
    """

    def __init__(self, db: Database):
        self.db = db

    async def get_account(self, account_id: str) -> Optional[Account]:
        if not is_uuid(account_id):
            return None
        row = await self.db.fetch_one(
            f"SELECT {ACCOUNT_COLUMNS} FROM users WHERE id = CAST(:account_id AS uuid)",
            {"account_id": account_id},
        )
        return row_to_account(row) if row else None

    async def _insert_transaction(
        self,
        session,
        account_id: str,
        operation_type: OperationType,
        amount: int,
        balance_after: int,
        metadata: Dict[str, Any],
        reference_id: Optional[str],
        idempotency_key: Optional[str],
    ) -> Transaction:
        result = await session.execute(text(INSERT_TRANSACTION_SQL), {
            "account_id": account_id,
            "operation_type": operation_type.value,
            "amount": amount,
            "balance_before": balance_after - amount,
            "balance_after": balance_after,
            "metadata": dump_json(metadata or {}),
            "reference_id": reference_id,
            "idempotency_key": idempotency_key,
        })
        return row_to_transaction(dict(result.fetchone()._mapping))

    async def deduct_credits(
        self,
        account_id: str,
        operation_type: OperationType,
        cost: int,
        metadata: Dict[str, Any],
        reference_id: Optional[str] = None,
    ) -> BalanceMutation:
        if not is_uuid(account_id):
            raise AccountNotFoundError(account_id)
        async with self.db.transaction() as session:
            result = await session.execute(text("""
                UPDATE users
                SET credits = credits - :cost, updated_at = now()
                WHERE id = CAST(:account_id AS uuid) AND credits >= :cost
                RETURNING credits
            """), {"account_id": account_id, "cost": cost})
            row = result.fetchone()

            if row is None:
                current = await session.execute(
                    text("SELECT credits FROM users WHERE id = CAST(:account_id AS uuid)"),
                    {"account_id": account_id},
                )
                current_row = current.fetchone()
                if current_row is None:
                    raise AccountNotFoundError(account_id)
                balance = int(current_row.credits)
                logger.debug(f"[PG_STORE] Conditional deduct of {cost} rejected for {account_id} (balance {balance})")
                return BalanceMutation(applied=False, balance_before=balance, balance_after=balance)

            balance_after = int(row.credits)
            transaction = await self._insert_transaction(
                session, account_id, operation_type, -cost, balance_after, metadata, reference_id, None
            )

        return BalanceMutation(
            applied=True,
            balance_before=transaction.balance_before,
            balance_after=transaction.balance_after,
            transaction=transaction,
        )

    async def add_credits(
        self,
        account_id: str,
        operation_type: OperationType,
        amount: int,
        metadata: Dict[str, Any],
        reference_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> BalanceMutation:
        if not is_uuid(account_id):
            raise AccountNotFoundError(account_id)
        try:
            async with self.db.transaction() as session:
                result = await session.execute(text("""
                    UPDATE users
                    SET credits = credits + :amount, updated_at = now()
                    WHERE id = CAST(:account_id AS uuid)
                    RETURNING credits
                """), {"account_id": account_id, "amount": amount})
                row = result.fetchone()
                if row is None:
                    raise AccountNotFoundError(account_id)

                transaction = await self._insert_transaction(
                    session, account_id, operation_type, amount, int(row.credits),
                    metadata, reference_id, idempotency_key,
                )
        except IntegrityError as e:
            if idempotency_key and _is_idempotency_conflict(e):
                raise DuplicateGrantError(operation_type.value, idempotency_key) from e
            raise

        return BalanceMutation(
            applied=True,
            balance_before=transaction.balance_before,
            balance_after=transaction.balance_after,
            transaction=transaction,
        )

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        if not is_uuid(transaction_id):
            return None
        row = await self.db.fetch_one(
            f"SELECT {TRANSACTION_COLUMNS} FROM credit_transactions WHERE id = CAST(:id AS uuid)",
            {"id": transaction_id},
        )
        return row_to_transaction(row) if row else None

    async def list_transactions(
        self,
        account_id: str,
        limit: int,
        operation_type: Optional[OperationType] = None,
    ) -> List[Transaction]:
        if not is_uuid(account_id):
            return []
        params: Dict[str, Any] = {"account_id": account_id, "limit": limit}
        type_filter = ""
        if operation_type is not None:
            type_filter = "AND operation_type = :operation_type"
            params["operation_type"] = operation_type.value

        rows = await self.db.fetch_all(f"""
            SELECT {TRANSACTION_COLUMNS}
            FROM credit_transactions
            WHERE user_id = CAST(:account_id AS uuid) {type_filter}
            ORDER BY created_at DESC, id DESC
            LIMIT :limit
        """, params)
        return [row_to_transaction(row) for row in rows]

    async def find_transaction_by_idempotency_key(
        self,
        operation_type: OperationType,
        idempotency_key: str,
    ) -> Optional[Transaction]:
        row = await self.db.fetch_one(f"""
            SELECT {TRANSACTION_COLUMNS}
            FROM credit_transactions
            WHERE operation_type = :operation_type AND idempotency_key = :idempotency_key
            LIMIT 1
        """, {"operation_type": operation_type.value, "idempotency_key": idempotency_key})
        return row_to_transaction(row) if row else None

    async def find_account_id_by_stripe_ids(
        self,
        subscription_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Optional[str]:
        if not subscription_id and not customer_id:
            return None
        row = await self.db.fetch_one("""
            SELECT id FROM users
            WHERE (CAST(:subscription_id AS text) IS NOT NULL AND stripe_subscription_id = :subscription_id)
               OR (CAST(:customer_id AS text) IS NOT NULL AND stripe_customer_id = :customer_id)
            ORDER BY (stripe_subscription_id = :subscription_id) DESC NULLS LAST
            LIMIT 1
        """, {"subscription_id": subscription_id, "customer_id": customer_id})
        return str(row['id']) if row else None

    async def update_subscription(
        self,
        account_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        *,
        stripe_customer_id: Optional[str] = None,
        stripe_subscription_id: Optional[str] = None,
        subscription_status: Optional[str] = None,
        subscription_plan: Optional[str] = None,
        current_period_end: Optional[datetime] = None,
    ) -> None:
        updates = subscription_updates(
            stripe_customer_id=stripe_customer_id,
            stripe_subscription_id=stripe_subscription_id,
            subscription_status=subscription_status,
            subscription_plan=subscription_plan,
            current_period_end=current_period_end,
        )
        if not updates:
            return
        if account_id:
            if not is_uuid(account_id):
                return
            where, params = "id = CAST(:match AS uuid)", {"match": account_id}
        elif subscription_id:
            where, params = "stripe_subscription_id = :match", {"match": subscription_id}
        else:
            raise ValueError("account_id or subscription_id is required")

        # Column names come from the fixed keyword set above, never from input
        assignments = ", ".join(f"{column} = :{column}" for column in updates)
        params.update(updates)
        await self.db.execute(
            f"UPDATE users SET {assignments}, updated_at = now() WHERE {where}",
            params,
        )
