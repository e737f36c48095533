"""
Transaction persistence.

Every mutation writes the transaction header (with its splits embedded),
one document per split and a relative balance increment per affected
account as ONE atomic batch. The reversed intermediate state of an update
is never written: only the net delta per account is committed.

Legacy single-entry transactions are normalized to canonical splits on
read, so update and delete reverse exactly what the legacy record implied.
"""

from datetime import date
from typing import Mapping, Optional, Union

from ledgerbook.accounting.entries import LedgerEntryFactory
from ledgerbook.accounting.projector import BalanceDeltas, BalanceProjector
from ledgerbook.audit import AuditLogger
from ledgerbook.config import LedgerSettings
from ledgerbook.errors import NotFoundError, ValidationError
from ledgerbook.ledger.base import (
    ACCOUNTS,
    SPLITS,
    TRANSACTIONS,
    LedgerService,
    collection_path,
    to_document,
)
from ledgerbook.models.audit import AuditEventBuilder
from ledgerbook.models.ledger import (
    Account,
    LegacyTransaction,
    SimpleTransactionIntent,
    SplitEntry,
    SplitTransaction,
    TransactionDetails,
    ValidationResult,
    new_id,
    parse_transaction_document,
    utc_now,
)
from ledgerbook.services.storage import DocumentStore, QueryFilter, WriteBatch
from ledgerbook.validation import IntentValidator


def _version_of(doc: dict) -> dict:
    """Precondition pinning a header to the revision that was read."""
    return {"updated_at": doc.get("updated_at")}


def _deltas_for_audit(deltas: BalanceDeltas) -> dict[str, str]:
    return {account_id: str(delta) for account_id, delta in deltas.items()}


class TransactionStore(LedgerService):
    """Atomic create / update / delete of transactions within a book."""

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[IntentValidator] = None,
        factory: Optional[LedgerEntryFactory] = None,
        projector: Optional[BalanceProjector] = None,
    ):
        super().__init__(store, settings, audit_logger)
        tolerance = self._settings.balance_tolerance
        self._validator = validator or IntentValidator(tolerance)
        self._factory = factory or LedgerEntryFactory(tolerance)
        self._projector = projector or BalanceProjector()

    @property
    def validator(self) -> IntentValidator:
        return self._validator

    # =========================================================================
    # READS
    # =========================================================================

    async def load_accounts(self, book_id: str) -> dict[str, Account]:
        docs = await self._store.query(collection_path(book_id, ACCOUNTS))
        accounts = [Account.model_validate(doc) for doc in docs]
        return {account.id: account for account in accounts}

    async def _load(
        self,
        book_id: str,
        transaction_id: str,
        accounts: Mapping[str, Account],
    ) -> tuple[SplitTransaction, dict]:
        """The normalized transaction plus the revision precondition of its header."""
        doc = await self._store.get(collection_path(book_id, TRANSACTIONS), transaction_id)
        if doc is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return self._factory.normalize(parse_transaction_document(doc), accounts), _version_of(doc)

    async def get(self, book_id: str, transaction_id: str) -> SplitTransaction:
        """Fetch one transaction in canonical split form."""
        accounts = await self.load_accounts(book_id)
        transaction, _ = await self._load(book_id, transaction_id, accounts)
        return transaction

    # =========================================================================
    # STAGING
    # =========================================================================

    def _split_documents(self, transaction: SplitTransaction) -> list[dict]:
        return [
            {
                **to_document(split),
                "book_id": transaction.book_id,
                "date": transaction.date.isoformat(),
            }
            for split in transaction.splits
        ]

    def _stage_deltas(
        self,
        batch: WriteBatch,
        book_id: str,
        deltas: BalanceDeltas,
        accounts: Optional[Mapping[str, Account]] = None,
    ) -> None:
        """Stage one relative balance increment per account with a non-zero delta."""
        path = collection_path(book_id, ACCOUNTS)
        for account_id, delta in deltas.items():
            if delta == 0:
                continue
            if accounts is not None and account_id not in accounts:
                self._logger.warning(
                    "balance_target_missing",
                    book_id=book_id,
                    account_id=account_id,
                    delta=str(delta),
                )
                continue
            batch.increment(path, account_id, "balance", delta)

    def stage_create(self, batch: WriteBatch, transaction: SplitTransaction) -> BalanceDeltas:
        """
        Add header, splits and balance increments of a new transaction to a
        caller-owned batch. Nothing is written until the caller commits.
        """
        book_id = transaction.book_id
        batch.create(
            collection_path(book_id, TRANSACTIONS),
            transaction.id,
            to_document(transaction),
        )
        for doc in self._split_documents(transaction):
            batch.create(collection_path(book_id, SPLITS), doc["id"], doc)

        deltas = self._projector.apply(transaction.splits)
        self._stage_deltas(batch, book_id, deltas)
        return deltas

    async def _stage_remove(
        self,
        batch: WriteBatch,
        transaction: SplitTransaction,
        expected: Optional[dict] = None,
    ) -> None:
        """Stage deletion of a header and every split document stored for it."""
        book_id = transaction.book_id
        batch.delete(collection_path(book_id, TRANSACTIONS), transaction.id, expected=expected)
        for doc in await self._split_docs_of(book_id, transaction.id):
            batch.delete(collection_path(book_id, SPLITS), doc["id"])

    async def _split_docs_of(self, book_id: str, transaction_id: str) -> list[dict]:
        return await self._store.query(
            collection_path(book_id, SPLITS),
            filters=[QueryFilter(field="transaction_id", value=transaction_id)],
        )

    # =========================================================================
    # VALIDATION
    # =========================================================================

    async def _reject_if_invalid(
        self,
        result: ValidationResult,
        book_id: str,
        operation: str,
        transaction_id: Optional[str] = None,
    ) -> None:
        if result.is_valid:
            return
        await self._audit.log(AuditEventBuilder.transaction_rejected(
            book_id,
            operation,
            [issue.model_dump() for issue in result.issues if issue.severity == "error"],
            transaction_id,
        ))
        self._validator.raise_for_errors(result)

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_simple(
        self,
        book_id: str,
        user_id: str,
        intent: SimpleTransactionIntent,
    ) -> str:
        """
        Record a two-account movement (expense, income or transfer).

        Raises:
            ValidationError: missing/unknown accounts or non-positive amount
            PersistenceError: the atomic write failed; nothing was written
        """
        accounts = await self.load_accounts(book_id)
        result = self._validator.validate_simple(intent, accounts)
        await self._reject_if_invalid(result, book_id, "create")

        transaction_id = new_id("txn")
        source = accounts[intent.from_account_id]
        destination = accounts[intent.to_account_id]
        splits = self._factory.simple_transfer(transaction_id, source, destination, intent.amount)
        transaction = self._factory.build_transaction(
            transaction_id, book_id, user_id, intent, splits, source.currency
        )
        return await self._commit_new(transaction)

    async def create_split(
        self,
        book_id: str,
        user_id: str,
        details: TransactionDetails,
        entries: list[SplitEntry],
    ) -> str:
        """
        Record a multi-way split.

        Debits must equal credits within tolerance; a rejected split is
        refused before anything is written.
        """
        accounts = await self.load_accounts(book_id)
        result = self._validator.validate_split(details, entries, accounts)
        await self._reject_if_invalid(result, book_id, "create")

        transaction_id = new_id("txn")
        splits = self._factory.multi_split(transaction_id, entries, accounts)
        currency = accounts[entries[0].account_id].currency
        transaction = self._factory.build_transaction(
            transaction_id, book_id, user_id, details, splits, currency
        )
        return await self._commit_new(transaction)

    async def _commit_new(self, transaction: SplitTransaction) -> str:
        batch = self._store.batch()
        self.stage_create(batch, transaction)
        await self._commit(
            batch, "create_transaction", "transaction", transaction.id, transaction.book_id
        )

        self._logger.info(
            "transaction_created",
            book_id=transaction.book_id,
            transaction_id=transaction.id,
            splits=len(transaction.splits),
        )
        await self._audit.log(AuditEventBuilder.transaction_created(
            transaction.book_id,
            transaction.id,
            transaction.description,
            len(transaction.splits),
        ))
        return transaction.id

    # =========================================================================
    # UPDATE
    # =========================================================================

    async def update(
        self,
        book_id: str,
        transaction_id: str,
        intent: Union[SimpleTransactionIntent, TransactionDetails],
        entries: Optional[list[SplitEntry]] = None,
    ) -> SplitTransaction:
        """
        Replace a transaction as reverse(old) + apply(new), committed once.

        - entries given: the new legs come from the multi-way path
        - SimpleTransactionIntent: the new legs are a simple transfer
        - plain TransactionDetails: header-only edit, splits and balances unchanged

        The result is the same as deleting the old transaction and creating
        the new one, without the intermediate state ever being stored. The
        commit only applies if the header is still the revision that was
        read; otherwise nothing is written and PersistenceError is raised.
        """
        accounts = await self.load_accounts(book_id)
        old, version = await self._load(book_id, transaction_id, accounts)

        if entries is not None:
            result = self._validator.validate_split(intent, entries, accounts)
            await self._reject_if_invalid(result, book_id, "update", transaction_id)
            new_splits = self._factory.multi_split(transaction_id, entries, accounts)
        elif isinstance(intent, SimpleTransactionIntent):
            result = self._validator.validate_simple(intent, accounts)
            await self._reject_if_invalid(result, book_id, "update", transaction_id)
            new_splits = self._factory.simple_transfer(
                transaction_id,
                accounts[intent.from_account_id],
                accounts[intent.to_account_id],
                intent.amount,
            )
        else:
            result = self._validator.validate_details(intent)
            await self._reject_if_invalid(result, book_id, "update", transaction_id)
            new_splits = old.splits

        updated = SplitTransaction(
            id=transaction_id,
            book_id=book_id,
            user_id=old.user_id,
            description=intent.description,
            date=intent.date,
            currency=intent.currency or old.currency,
            notes=intent.notes,
            number=intent.number,
            splits=new_splits,
            created_at=old.created_at,
            updated_at=utc_now(),
        )
        deltas = self._projector.net(old.splits, new_splits)

        batch = self._store.batch()
        batch.set(
            collection_path(book_id, TRANSACTIONS),
            transaction_id,
            to_document(updated),
            expected=version,
        )

        new_docs = self._split_documents(updated)
        new_ids = {doc["id"] for doc in new_docs}
        for doc in await self._split_docs_of(book_id, transaction_id):
            if doc["id"] not in new_ids:
                batch.delete(collection_path(book_id, SPLITS), doc["id"])
        for doc in new_docs:
            batch.set(collection_path(book_id, SPLITS), doc["id"], doc)

        self._stage_deltas(batch, book_id, deltas, accounts)
        await self._commit(batch, "update_transaction", "transaction", transaction_id, book_id)

        self._logger.info(
            "transaction_updated",
            book_id=book_id,
            transaction_id=transaction_id,
            accounts_touched=len(deltas),
        )
        await self._audit.log(AuditEventBuilder.transaction_updated(
            book_id, transaction_id, _deltas_for_audit(deltas)
        ))
        return updated

    # =========================================================================
    # DELETE
    # =========================================================================

    async def delete(self, book_id: str, transaction_id: str) -> None:
        """
        Reverse a transaction and remove its header and splits in one commit.

        Raises:
            NotFoundError: the transaction does not exist (e.g. deleted twice)
            PersistenceError: the transaction changed after it was read
        """
        accounts = await self.load_accounts(book_id)
        transaction, version = await self._load(book_id, transaction_id, accounts)
        deltas = self._projector.reverse(transaction.splits)

        batch = self._store.batch()
        await self._stage_remove(batch, transaction, version)
        self._stage_deltas(batch, book_id, deltas, accounts)
        await self._commit(batch, "delete_transaction", "transaction", transaction_id, book_id)

        self._logger.info("transaction_deleted", book_id=book_id, transaction_id=transaction_id)
        await self._audit.log(AuditEventBuilder.transaction_deleted(
            book_id, transaction_id, _deltas_for_audit(deltas)
        ))

    async def delete_account(self, book_id: str, account_id: str) -> int:
        """
        Delete an account and every transaction that references it.

        Each referencing transaction is reversed on the other accounts it
        touched; transactions, splits and the account go in one commit.

        Returns:
            Number of transactions removed
        """
        accounts = await self.load_accounts(book_id)
        account = accounts.get(account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")

        docs = await self._store.query(collection_path(book_id, TRANSACTIONS))
        referencing = []
        orphans = []
        for doc in docs:
            stored = parse_transaction_document(doc)
            try:
                transaction = self._factory.normalize(stored, accounts)
            except ValidationError:
                # Legacy record whose counter account is already gone: nothing to reverse
                if isinstance(stored, LegacyTransaction) and account_id in (
                    stored.account_id,
                    stored.to_account_id,
                ):
                    orphans.append(doc)
                continue
            if account_id in transaction.account_ids:
                referencing.append((transaction, _version_of(doc)))

        reversals = [self._projector.reverse(txn.splits) for txn, _ in referencing]
        deltas = self._projector.combine(*reversals)
        deltas.pop(account_id, None)

        batch = self._store.batch()
        for transaction, version in referencing:
            await self._stage_remove(batch, transaction, version)
        for doc in orphans:
            self._logger.warning(
                "orphan_legacy_transaction_removed",
                book_id=book_id,
                transaction_id=doc["id"],
            )
            batch.delete(
                collection_path(book_id, TRANSACTIONS),
                doc["id"],
                expected=_version_of(doc),
            )
        self._stage_deltas(batch, book_id, deltas, accounts)
        batch.delete(collection_path(book_id, ACCOUNTS), account_id)
        await self._commit(batch, "delete_account", "account", account_id, book_id)

        self._logger.info(
            "account_deleted",
            book_id=book_id,
            account_id=account_id,
            cascaded_transactions=len(referencing) + len(orphans),
        )
        await self._audit.log(AuditEventBuilder.account_deleted(
            book_id, account_id, account.name, len(referencing) + len(orphans)
        ))
        return len(referencing) + len(orphans)

    # =========================================================================
    # LISTING
    # =========================================================================

    async def list(
        self,
        book_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        account_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[SplitTransaction]:
        """
        List transactions newest first, normalized to splits.

        Args:
            date_from: Only transactions on or after this date
            date_to: Only transactions on or before this date
            account_id: Only transactions with a leg on this account
            limit: Maximum number of results
            offset: Number of results to skip
        """
        filters = []
        if date_from:
            filters.append(QueryFilter(field="date", operator=">=", value=date_from.isoformat()))
        if date_to:
            filters.append(QueryFilter(field="date", operator="<=", value=date_to.isoformat()))

        accounts = await self.load_accounts(book_id)
        docs = await self._store.query(
            collection_path(book_id, TRANSACTIONS),
            filters=filters,
            order_by="date",
            descending=True,
        )

        transactions = []
        for doc in docs:
            try:
                transaction = self._factory.normalize(parse_transaction_document(doc), accounts)
            except ValidationError as e:
                # A legacy record whose accounts are gone cannot be shown as splits
                self._logger.warning(
                    "transaction_not_normalizable",
                    book_id=book_id,
                    transaction_id=doc.get("id"),
                    error=str(e),
                )
                continue
            if account_id and account_id not in transaction.account_ids:
                continue
            transactions.append(transaction)

        end = None if limit is None else offset + limit
        return transactions[offset:end]
