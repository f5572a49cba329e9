from datetime import datetime
from typing import Any, Dict, List, Optional

from credit_core.billing.domain.entities import Account, OperationType, Transaction
from credit_core.billing.shared.exceptions import AccountNotFoundError, DuplicateGrantError
from credit_core.services.supabase import SupabaseConnection
from credit_core.utils.logger import logger
from .interfaces import BalanceMutation, LedgerStore, subscription_updates
from .mappers import is_uuid, row_to_account, row_to_transaction, _parse_datetime

ACCOUNT_NOT_FOUND = 'account_not_found'
INSUFFICIENT_CREDITS = 'insufficient_credits'
DUPLICATE_GRANT = 'duplicate_grant'


def _first(data: Any) -> Optional[Dict[str, Any]]:
    if isinstance(data, list):
        return data[0] if data else None
    return data or None


class SupabaseLedgerStore(LedgerStore):
    """Ledger store over PostgREST.

    PostgREST cannot run multi-statement transactions, so both mutations go
    through the `deduct_credits` / `add_credits` database functions, which
    perform the conditional update and the insert in one call.
    """

    def __init__(self, connection: SupabaseConnection):
        self.connection = connection

    def _mutation_from_rpc(
        self,
        row: Dict[str, Any],
        account_id: str,
        operation_type: OperationType,
        amount: int,
        metadata: Dict[str, Any],
        reference_id: Optional[str],
        idempotency_key: Optional[str],
    ) -> BalanceMutation:
        balance_after = int(row.get('balance_after') or 0)
        balance_before = int(row['balance_before']) if row.get('balance_before') is not None else balance_after - amount
        transaction = Transaction(
            id=str(row['transaction_id']),
            account_id=account_id,
            operation_type=operation_type,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            created_at=_parse_datetime(row.get('created_at')) or datetime.now().astimezone(),
            metadata=dict(metadata),
            reference_id=reference_id,
            idempotency_key=idempotency_key,
        )
        return BalanceMutation(
            applied=True,
            balance_before=balance_before,
            balance_after=balance_after,
            transaction=transaction,
        )

    async def get_account(self, account_id: str) -> Optional[Account]:
        if not is_uuid(account_id):
            return None
        client = await self.connection.client
        result = await client.table('users').select(
            'id, credits, stripe_customer_id, stripe_subscription_id, subscription_status, subscription_plan, current_period_end'
        ).eq('id', account_id).limit(1).execute()
        row = _first(result.data)
        return row_to_account(row) if row else None

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
        client = await self.connection.client
        result = await client.rpc('deduct_credits', {
            'p_user_id': account_id,
            'p_operation_type': operation_type.value,
            'p_amount': cost,
            'p_metadata': metadata or {},
            'p_reference_id': reference_id,
        }).execute()

        row = _first(result.data)
        if row is None:
            raise RuntimeError("No data returned from deduct_credits")

        if not row.get('success'):
            error_code = row.get('error_code')
            if error_code == ACCOUNT_NOT_FOUND:
                raise AccountNotFoundError(account_id)
            if error_code != INSUFFICIENT_CREDITS:
                raise RuntimeError(f"deduct_credits failed: {row.get('error_message')}")
            balance = int(row.get('balance_after') or 0)
            return BalanceMutation(applied=False, balance_before=balance, balance_after=balance)

        return self._mutation_from_rpc(row, account_id, operation_type, -cost, metadata, reference_id, None)

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
        client = await self.connection.client
        result = await client.rpc('add_credits', {
            'p_user_id': account_id,
            'p_operation_type': operation_type.value,
            'p_amount': amount,
            'p_metadata': metadata or {},
            'p_reference_id': reference_id,
            'p_idempotency_key': idempotency_key,
        }).execute()

        row = _first(result.data)
        if row is None:
            raise RuntimeError("No data returned from add_credits")

        if not row.get('success'):
            error_code = row.get('error_code')
            if error_code == ACCOUNT_NOT_FOUND:
                raise AccountNotFoundError(account_id)
            if error_code == DUPLICATE_GRANT and idempotency_key:
                logger.info(f"[SUPABASE_STORE] Duplicate grant {idempotency_key} for {account_id}")
                raise DuplicateGrantError(operation_type.value, idempotency_key)
            raise RuntimeError(f"add_credits failed: {row.get('error_message')}")

        return self._mutation_from_rpc(row, account_id, operation_type, amount, metadata, reference_id, idempotency_key)

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        if not is_uuid(transaction_id):
            return None
        client = await self.connection.client
        result = await client.table('credit_transactions').select('*').eq('id', transaction_id).limit(1).execute()
        row = _first(result.data)
        return row_to_transaction(row) if row else None

    async def list_transactions(
        self,
        account_id: str,
        limit: int,
        operation_type: Optional[OperationType] = None,
    ) -> List[Transaction]:
        if not is_uuid(account_id):
            return []
        client = await self.connection.client
        query = client.table('credit_transactions').select('*').eq('user_id', account_id)
        if operation_type is not None:
            query = query.eq('operation_type', operation_type.value)
        result = await query.order('created_at', desc=True).limit(limit).execute()
        return [row_to_transaction(row) for row in (result.data or [])]

    async def find_transaction_by_idempotency_key(
        self,
        operation_type: OperationType,
        idempotency_key: str,
    ) -> Optional[Transaction]:
        client = await self.connection.client
        result = await client.table('credit_transactions').select('*')\
            .eq('operation_type', operation_type.value)\
            .eq('idempotency_key', idempotency_key)\
            .limit(1)\
            .execute()
        row = _first(result.data)
        return row_to_transaction(row) if row else None

    async def find_account_id_by_stripe_ids(
        self,
        subscription_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Optional[str]:
        client = await self.connection.client
        for column, value in (('stripe_subscription_id', subscription_id), ('stripe_customer_id', customer_id)):
            if not value:
                continue
            result = await client.table('users').select('id').eq(column, value).limit(1).execute()
            row = _first(result.data)
            if row:
                return str(row['id'])
        return None

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
            current_period_end=current_period_end.isoformat() if current_period_end else None,
        )
        if not updates:
            return
        client = await self.connection.client
        query = client.table('users').update(updates)
        if account_id:
            if not is_uuid(account_id):
                return
            query = query.eq('id', account_id)
        elif subscription_id:
            query = query.eq('stripe_subscription_id', subscription_id)
        else:
            raise ValueError("account_id or subscription_id is required")
        await query.execute()
