"""
Derive utility expenses from the bill details ingested by a sync run.
"""

from typing import Dict, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ingestion.loaders.entity_loader import EntityLoader
from models.billing import BillDetail, UtilityAccount, UtilityExpense

logger = logging.getLogger(__name__)


class UtilityExpenseProcessor:
    """
    Turns bill lines booked against a utility GL account into
    ``UtilityExpense`` rows keyed by the bill's transaction id.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.loader = EntityLoader(db_session)

    async def _accounts_by_number(self) -> Dict[str, UtilityAccount]:
        result = await self.db.execute(
            select(UtilityAccount).where(UtilityAccount.is_active.is_(True))
        )
        return {account.gl_account_number: account for account in result.scalars().all()}

    async def process_from_bill_details(self, sync_run_id: int) -> Dict[str, int]:
        """
        Upsert one utility expense per matching bill detail of ``sync_run_id``.

        Bills without a GL account number or a resolved property are skipped;
        bills whose GL account maps to no active utility account are unmatched.

        Returns:
            Dictionary with created, updated, skipped, unmatched and errors counts
        """
        stats = {"created": 0, "updated": 0, "skipped": 0, "unmatched": 0, "errors": 0}

        accounts = await self._accounts_by_number()
        result = await self.db.execute(
            select(BillDetail)
            .where(BillDetail.sync_run_id == sync_run_id)
            .order_by(BillDetail.id)
        )
        bills: List[BillDetail] = list(result.scalars().all())

        for bill in bills:
            if not bill.gl_account_number:
                stats["skipped"] += 1
                continue

            account = accounts.get(bill.gl_account_number)
            if account is None:
                stats["unmatched"] += 1
                continue

            if bill.property_id is None:
                stats["skipped"] += 1
                continue

            values = {
                "property_id": bill.property_id,
                "bill_detail_id": bill.id,
                "utility_account_id": account.id,
                "utility_type": account.utility_type,
                "expense_date": bill.bill_date,
                "period_start": bill.service_from,
                "period_end": bill.service_to,
                "amount": bill.amount,
                "vendor_name": bill.payee_name,
                "description": bill.description,
            }

            try:
                async with self.db.begin_nested():
                    _, created = await self.loader.upsert(
                        UtilityExpense, "external_expense_id", str(bill.txn_id), values
                    )
            except Exception as e:
                stats["errors"] += 1
                logger.error(
                    f"Failed to create utility expense for bill txn_id={bill.txn_id}: {str(e)}",
                    extra={"error_context": {"sync_run_id": sync_run_id, "txn_id": bill.txn_id}}
                )
                continue

            stats["created" if created else "updated"] += 1

        logger.info(
            f"Utility expenses for sync run {sync_run_id}: {stats['created']} created, "
            f"{stats['updated']} updated, {stats['skipped']} skipped, "
            f"{stats['unmatched']} unmatched, {stats['errors']} errors"
        )
        return stats
