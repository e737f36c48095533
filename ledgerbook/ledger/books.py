"""
Book scoping and management.

A book is an isolated ledger: every account, transaction, split, category,
schedule and activity lives under books/{book_id}/... and every operation
of the ledger core takes the book id explicitly.

Also covers the account, category and activity records that belong to a
book. Account deletion cascades through transactions and therefore lives
in TransactionStore.
"""

from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from ledgerbook.errors import LedgerError, NotFoundError, ValidationError
from ledgerbook.ledger.base import (
    ACCOUNTS,
    ACTIVITIES,
    BOOK_COLLECTIONS,
    BOOKS_COLLECTION,
    CATEGORIES,
    SPLITS,
    LedgerService,
    collection_path,
    to_document,
    validated,
)
from ledgerbook.ledger.defaults import (
    DEFAULT_ACCOUNTS,
    DEFAULT_EXPENSE_CATEGORIES,
    DEFAULT_INCOME_CATEGORIES,
)
from ledgerbook.models.audit import AuditEventBuilder
from ledgerbook.models.ledger import (
    Account,
    AccountActivity,
    AccountType,
    ActivityType,
    Book,
    BookSettings,
    Category,
    Currency,
    ValidationIssue,
    utc_now,
)
from ledgerbook.services.storage import QueryFilter, StorageError


class SeedReport(BaseModel):
    """Outcome of seeding a book with the starter chart of accounts."""

    book_id: str
    created: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


def _invalid(field: str, message: str) -> ValidationError:
    return ValidationError(message, issues=[ValidationIssue(
        field=field,
        issue_type="invalid_value",
        message=message,
        severity="error",
    )])


class BookScope(LedgerService):
    """Books, their starter data, accounts, categories and account activity."""

    # =========================================================================
    # BOOKS
    # =========================================================================

    async def create_book(
        self,
        user_id: str,
        name: str,
        default_currency: Optional[Union[Currency, str]] = None,
        description: Optional[str] = None,
        seed_defaults: Optional[bool] = None,
    ) -> Book:
        """
        Create a book; the first book of a user becomes their default.

        The book record is committed before any seeding starts, so a seeding
        failure never leaves a book-less set of accounts.
        """
        existing = await self.list_books(user_id)
        book = validated(Book, {
            "user_id": user_id,
            "name": name,
            "description": description,
            "default_currency": default_currency or self._settings.default_currency,
            "is_default": not existing,
        }, "book")

        batch = self._store.batch().create(BOOKS_COLLECTION, book.id, to_document(book))
        await self._commit(batch, "create_book", "book", book.id, book.id)
        await self._audit.log(AuditEventBuilder.book_created(book.id, book.name, book.is_default))

        seed = self._settings.seed_default_data if seed_defaults is None else seed_defaults
        if seed:
            await self.initialize_defaults(book.id)
        return book

    async def initialize_defaults(self, book_id: str) -> SeedReport:
        """
        Seed a book with default accounts and categories.

        Each item is created on its own; a failing item is logged and
        skipped, so partial seeding is possible.

        Raises:
            NotFoundError: the book does not exist
        """
        book = await self.get_book(book_id)
        report = SeedReport(book_id=book_id)

        for data in DEFAULT_ACCOUNTS:
            await self._seed_item(report, "account", data["name"], self.create_account(
                book_id,
                book.user_id,
                name=data["name"],
                account_type=data["type"],
                currency=book.default_currency,
                color=data["color"],
                icon=data["icon"],
            ))

        for data in DEFAULT_INCOME_CATEGORIES + DEFAULT_EXPENSE_CATEGORIES:
            await self._seed_item(report, "category", data["name"], self.create_category(
                book_id,
                book.user_id,
                name=data["name"],
                category_type=data["type"],
                icon=data["icon"],
                color=data["color"],
            ))

        self._logger.info(
            "book_initialized",
            book_id=book_id,
            created=len(report.created),
            failed=len(report.failed),
        )
        await self._audit.log(AuditEventBuilder.book_seeded(
            book_id, len(report.created), len(report.failed)
        ))
        return report

    async def _seed_item(self, report: SeedReport, item_type: str, name: str, operation) -> None:
        try:
            await operation
        except (LedgerError, StorageError) as e:
            self._logger.warning(
                "seed_item_failed",
                book_id=report.book_id,
                item_type=item_type,
                item_name=name,
                error=str(e),
            )
            await self._audit.log(AuditEventBuilder.seed_item_failed(
                report.book_id, item_type, name, str(e)
            ))
            report.failed.append(f"{item_type} {name}")
        else:
            report.created.append(f"{item_type} {name}")

    async def is_initialized(self, book_id: str) -> bool:
        """A book counts as initialized once it has at least one account."""
        accounts = await self._store.query(collection_path(book_id, ACCOUNTS), limit=1)
        return bool(accounts)

    async def ensure_default_book(self, user_id: str, name: str = "Personal") -> Book:
        """Return the user's default book, creating one if the user has none."""
        books = await self.list_books(user_id)
        if not books:
            return await self.create_book(user_id, name)
        for book in books:
            if book.is_default:
                return book
        return books[0]

    async def get_book(self, book_id: str) -> Book:
        doc = await self._store.get(BOOKS_COLLECTION, book_id)
        if doc is None:
            raise NotFoundError(f"Book not found: {book_id}")
        return Book.model_validate(doc)

    async def list_books(self, user_id: str) -> list[Book]:
        docs = await self._store.query(
            BOOKS_COLLECTION,
            filters=[QueryFilter(field="user_id", value=user_id)],
            order_by="created_at",
        )
        return [Book.model_validate(doc) for doc in docs]

    async def update_book(
        self,
        book_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        default_currency: Optional[Union[Currency, str]] = None,
        settings: Optional[BookSettings] = None,
    ) -> Book:
        book = await self.get_book(book_id)
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        if default_currency is not None:
            changes["default_currency"] = Currency(default_currency)
        if settings is not None:
            changes["settings"] = settings

        updated = validated(Book, {**book.model_dump(), **changes, "updated_at": utc_now()}, "book")
        batch = self._store.batch().set(BOOKS_COLLECTION, book_id, to_document(updated))
        await self._commit(batch, "update_book", "book", book_id, book_id)
        return updated

    async def set_default_book(self, user_id: str, book_id: str) -> Book:
        """Make `book_id` the user's only default book."""
        books = await self.list_books(user_id)
        if not any(book.id == book_id for book in books):
            raise NotFoundError(f"Book not found: {book_id}")

        batch = self._store.batch()
        now = utc_now().isoformat()
        for book in books:
            if book.is_default != (book.id == book_id):
                batch.update(BOOKS_COLLECTION, book.id, {
                    "is_default": book.id == book_id,
                    "updated_at": now,
                })
        if len(batch):
            await self._commit(batch, "set_default_book", "book", book_id, book_id)
        return await self.get_book(book_id)

    async def delete_book(self, book_id: str) -> int:
        """
        Delete a book and every document scoped to it, in one commit.

        A user's only book cannot be deleted. Deleting the default book
        promotes the user's oldest remaining book.

        Returns:
            Number of book-scoped documents removed
        """
        book = await self.get_book(book_id)
        books = await self.list_books(book.user_id)
        if len(books) <= 1:
            raise _invalid("book_id", "Cannot delete the only book; create another book first")

        batch = self._store.batch()
        removed = 0
        for collection in BOOK_COLLECTIONS:
            path = collection_path(book_id, collection)
            for doc in await self._store.query(path):
                batch.delete(path, doc["id"])
                removed += 1
        batch.delete(BOOKS_COLLECTION, book_id)

        if book.is_default:
            successor = next(other for other in books if other.id != book_id)
            batch.update(BOOKS_COLLECTION, successor.id, {
                "is_default": True,
                "updated_at": utc_now().isoformat(),
            })

        await self._commit(batch, "delete_book", "book", book_id, book_id)
        await self._audit.log(AuditEventBuilder.book_deleted(book_id, removed))
        return removed

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def create_account(
        self,
        book_id: str,
        user_id: str,
        name: str,
        account_type: Union[AccountType, str],
        currency: Optional[Union[Currency, str]] = None,
        balance: Decimal = Decimal("0"),
        color: Optional[str] = None,
        icon: Optional[str] = None,
        path: Optional[str] = None,
    ) -> Account:
        """
        Create an account.

        A non-zero opening balance is not backed by any split, so it is
        recorded as a balance_update activity in the same commit.
        """
        book = await self.get_book(book_id)
        fields: dict[str, Any] = {
            "book_id": book_id,
            "user_id": user_id,
            "name": name,
            "type": account_type,
            "currency": currency or book.default_currency,
            "balance": Decimal(str(balance)),
            "path": path,
        }
        if color:
            fields["color"] = color
        if icon:
            fields["icon"] = icon
        account = validated(Account, fields, "account")

        batch = self._store.batch().create(
            collection_path(book_id, ACCOUNTS), account.id, to_document(account)
        )
        if account.balance != 0:
            activity = AccountActivity(
                book_id=book_id,
                account_id=account.id,
                account_name=account.name,
                user_id=user_id,
                type=ActivityType.BALANCE_UPDATE,
                changes={"balance": {"old": "0", "new": str(account.balance)}},
            )
            batch.create(collection_path(book_id, ACTIVITIES), activity.id, to_document(activity))

        await self._commit(batch, "create_account", "account", account.id, book_id)
        await self._audit.log(AuditEventBuilder.account_created(
            book_id, account.id, account.name, account.type.value
        ))
        return account

    async def get_account(self, book_id: str, account_id: str) -> Account:
        doc = await self._store.get(collection_path(book_id, ACCOUNTS), account_id)
        if doc is None:
            raise NotFoundError(f"Account not found: {account_id}")
        return Account.model_validate(doc)

    async def list_accounts(
        self,
        book_id: str,
        account_type: Optional[Union[AccountType, str]] = None,
    ) -> list[Account]:
        filters = []
        if account_type is not None:
            filters.append(QueryFilter(field="type", value=AccountType(account_type).value))
        docs = await self._store.query(
            collection_path(book_id, ACCOUNTS),
            filters=filters,
            order_by="created_at",
        )
        return [Account.model_validate(doc) for doc in docs]

    async def update_account(
        self,
        book_id: str,
        account_id: str,
        name: Optional[str] = None,
        account_type: Optional[Union[AccountType, str]] = None,
        currency: Optional[Union[Currency, str]] = None,
        balance: Optional[Decimal] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
        path: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Account:
        """
        Edit an account directly.

        Name, currency and balance edits are recorded as one AccountActivity
        in the same commit. A balance edit is applied as a relative increment
        so it composes with concurrent split postings.

        Raises:
            ValidationError: type change while splits reference the account
        """
        account = await self.get_account(book_id, account_id)
        path_name = collection_path(book_id, ACCOUNTS)

        fields: dict[str, Any] = {}
        changes: dict[str, dict[str, Any]] = {}

        if account_type is not None and AccountType(account_type) != account.type:
            referenced = await self._store.query(
                collection_path(book_id, SPLITS),
                filters=[QueryFilter(field="account_id", value=account_id)],
                limit=1,
            )
            if referenced:
                raise _invalid(
                    "type",
                    "Account type cannot change while transactions reference the account",
                )
            fields["type"] = AccountType(account_type).value

        if name is not None and name.strip() != account.name:
            fields["name"] = name.strip()
            changes["name"] = {"old": account.name, "new": name.strip()}
        if currency is not None and Currency(currency) != account.currency:
            fields["currency"] = Currency(currency).value
            changes["currency"] = {"old": account.currency.value, "new": Currency(currency).value}
        if color is not None:
            fields["color"] = color
        if icon is not None:
            fields["icon"] = icon
        if path is not None:
            fields["path"] = path or None

        batch = self._store.batch()
        if balance is not None and Decimal(str(balance)) != account.balance:
            new_balance = Decimal(str(balance))
            changes["balance"] = {"old": str(account.balance), "new": str(new_balance)}
            batch.increment(path_name, account_id, "balance", new_balance - account.balance)

        # Validate the merged record before anything is written
        merged = {**to_document(account), **fields}
        if balance is not None:
            merged["balance"] = str(balance)
        validated(Account, merged, "account")

        batch.update(path_name, account_id, {**fields, "updated_at": utc_now().isoformat()})

        if changes:
            if "balance" in changes:
                activity_type = ActivityType.BALANCE_UPDATE
            elif "currency" in changes:
                activity_type = ActivityType.CURRENCY_UPDATE
            else:
                activity_type = ActivityType.DETAILS_UPDATE
            activity = AccountActivity(
                book_id=book_id,
                account_id=account_id,
                account_name=fields.get("name", account.name),
                user_id=user_id or account.user_id,
                type=activity_type,
                changes=changes,
            )
            batch.create(collection_path(book_id, ACTIVITIES), activity.id, to_document(activity))

        await self._commit(batch, "update_account", "account", account_id, book_id)
        await self._audit.log(AuditEventBuilder.account_updated(book_id, account_id, changes))
        return await self.get_account(book_id, account_id)

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def create_category(
        self,
        book_id: str,
        user_id: str,
        name: str,
        category_type: str,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Category:
        await self.get_book(book_id)
        fields: dict[str, Any] = {
            "book_id": book_id,
            "user_id": user_id,
            "name": name,
            "type": category_type,
        }
        if icon:
            fields["icon"] = icon
        if color:
            fields["color"] = color
        category = validated(Category, fields, "category")

        batch = self._store.batch().create(
            collection_path(book_id, CATEGORIES), category.id, to_document(category)
        )
        await self._commit(batch, "create_category", "category", category.id, book_id)
        return category

    async def list_categories(
        self,
        book_id: str,
        category_type: Optional[str] = None,
    ) -> list[Category]:
        filters = []
        if category_type is not None:
            filters.append(QueryFilter(field="type", value=category_type))
        docs = await self._store.query(
            collection_path(book_id, CATEGORIES),
            filters=filters,
            order_by="name",
        )
        return [Category.model_validate(doc) for doc in docs]

    async def update_category(
        self,
        book_id: str,
        category_id: str,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Category:
        path = collection_path(book_id, CATEGORIES)
        doc = await self._store.get(path, category_id)
        if doc is None:
            raise NotFoundError(f"Category not found: {category_id}")

        fields = {
            key: value
            for key, value in (("name", name), ("icon", icon), ("color", color))
            if value is not None
        }
        category = validated(Category, {**doc, **fields}, "category")
        if fields:
            batch = self._store.batch().update(path, category_id, to_document(category))
            await self._commit(batch, "update_category", "category", category_id, book_id)
        return category

    async def delete_category(self, book_id: str, category_id: str) -> None:
        path = collection_path(book_id, CATEGORIES)
        if await self._store.get(path, category_id) is None:
            raise NotFoundError(f"Category not found: {category_id}")
        batch = self._store.batch().delete(path, category_id)
        await self._commit(batch, "delete_category", "category", category_id, book_id)

    # =========================================================================
    # ACTIVITY
    # =========================================================================

    async def list_activities(
        self,
        book_id: str,
        account_id: Optional[str] = None,
    ) -> list[AccountActivity]:
        """Account activity, newest first."""
        filters = []
        if account_id is not None:
            filters.append(QueryFilter(field="account_id", value=account_id))
        docs = await self._store.query(
            collection_path(book_id, ACTIVITIES),
            filters=filters,
            order_by="date",
            descending=True,
        )
        return [AccountActivity.model_validate(doc) for doc in docs]
