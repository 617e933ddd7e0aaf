# ABOUTME: Supabase (PostgREST) ledger store for the clinic database
# ABOUTME: Handles credentials, paginated reads, row mapping, and balance writes

import logging
import os
import re
from decimal import Decimal
from typing import Any

import httpx

from clinicledger.exceptions import (
    AccountNotFoundError,
    AuthenticationError,
    CredentialsNotFoundError,
    StoreError,
)
from clinicledger.instruments import parse_date
from clinicledger.types import (
    BankAccount,
    ExpenseStatus,
    ExpenseTransaction,
    RevenueTransaction,
    cents_to_decimal,
    decimal_to_cents,
)

logger = logging.getLogger(__name__)

REST_PATH = "/rest/v1"
PAGE_SIZE = 1000

ACCOUNT_COLUMNS = "id,clinic_id,nome_conta,initial_balance,current_balance"
REVENUE_COLUMNS = (
    "id,clinic_id,description,valor,valor_bruto,valor_liquido,data_competencia,"
    "data_recebimento,forma_pagamento,parcelas,recebimento_parcelas,"
    "boleto_due_date,cheque_due_date,bank_account_id"
)
EXPENSE_COLUMNS = (
    "id,clinic_id,description,valor,status,data_competencia,data_vencimento,"
    "data_pagamento,bank_account_id"
)


def get_credentials() -> tuple[str, str]:
    """Get the Supabase URL and key from the environment."""
    url = os.environ.get("SUPABASE_URL", "").strip()
    key = (
        os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "").strip()
        or os.environ.get("SUPABASE_ANON_KEY", "").strip()
    )
    if not url or not key:
        raise CredentialsNotFoundError(
            "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_ANON_KEY)."
        )
    return url.rstrip("/"), key


def _money(value: Any) -> Decimal:
    return cents_to_decimal(decimal_to_cents(value))


def _count(value: Any) -> int:
    """Installment counts arrive as ints, strings, or labels like '3x'."""
    match = re.match(r"\s*(\d+)", str(value or ""))
    return int(match.group(1)) if match else 1


def account_from_row(row: dict) -> BankAccount:
    initial = row.get("initial_balance")
    current = row.get("current_balance")
    return BankAccount(
        id=str(row["id"]),
        tenant_id=row.get("clinic_id"),
        name=row.get("nome_conta") or "",
        initial_balance=Decimal(str(initial)) if initial is not None else Decimal("0.00"),
        current_balance=Decimal(str(current if current is not None else initial or 0)),
    )


def revenue_from_row(row: dict) -> RevenueTransaction:
    gross = row.get("valor_bruto")
    if gross is None:
        gross = row.get("valor")
    net = row.get("valor_liquido")
    return RevenueTransaction(
        id=str(row["id"]),
        tenant_id=row.get("clinic_id"),
        description=row.get("description") or "",
        gross_amount=_money(gross),
        net_amount=_money(net) if net is not None else None,
        competence_date=parse_date(row.get("data_competencia")),
        payment_instrument=row.get("forma_pagamento") or "",
        installment_count=_count(row.get("parcelas")),
        manual_installment_dates=row.get("recebimento_parcelas"),
        due_date=parse_date(row.get("boleto_due_date") or row.get("cheque_due_date")),
        payment_date=parse_date(row.get("data_recebimento")),
        bank_account_id=row.get("bank_account_id"),
    )


def expense_from_row(row: dict) -> ExpenseTransaction:
    status = ExpenseStatus.PAID if row.get("status") == "paid" else ExpenseStatus.PENDING
    return ExpenseTransaction(
        id=str(row["id"]),
        tenant_id=row.get("clinic_id"),
        description=row.get("description") or "",
        amount=_money(row.get("valor")),
        competence_date=parse_date(row.get("data_competencia")),
        due_date=parse_date(row.get("data_vencimento")),
        payment_date=parse_date(row.get("data_pagamento")),
        status=status,
        bank_account_id=row.get("bank_account_id"),
    )


class SupabaseLedgerStore:
    """
    Ledger store backed by the clinic's Supabase tables.

    Balance increments go through a Postgres function when `balance_rpc`
    is set (it must take `account_id` and `delta` and return the new
    balance). Without one, updates fall back to compare-and-set PATCHes.
    """

    def __init__(
        self,
        url: str | None = None,
        key: str | None = None,
        balance_rpc: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if client is None and (url is None or key is None):
            url, key = get_credentials()
        self._url = url
        self._key = key
        self._client = client
        self.balance_rpc = balance_rpc or os.environ.get("SUPABASE_BALANCE_RPC") or None

    @property
    def supports_atomic_increment(self) -> bool:
        return self.balance_rpc is not None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the authenticated HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self._url}{REST_PATH}",
                timeout=30.0,
                headers={
                    "apikey": self._key or "",
                    "Authorization": f"Bearer {self._key}",
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    def _check(self, response: httpx.Response, action: str) -> None:
        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Supabase rejected credentials while trying to {action} "
                f"(status {response.status_code})"
            )
        if response.status_code >= 400:
            raise StoreError(
                f"Failed to {action}: {response.status_code} {response.text}",
                status_code=response.status_code,
            )

    async def _select(self, table: str, columns: str, filters: dict[str, str]) -> list[dict]:
        """Fetch every matching row, one page at a time."""
        client = self._get_client()
        rows: list[dict] = []
        for page in range(100):  # Safety limit
            params = {
                "select": columns,
                "order": "id.asc",
                "limit": str(PAGE_SIZE),
                "offset": str(page * PAGE_SIZE),
                **filters,
            }
            try:
                response = await client.get(f"/{table}", params=params)
            except httpx.HTTPError as exc:
                raise StoreError(f"Failed to read {table}: {exc}") from exc
            self._check(response, f"read {table}")
            batch = response.json()
            rows.extend(batch)
            if len(batch) < PAGE_SIZE:
                break
        logger.debug(f"Read {len(rows)} rows from {table}")
        return rows

    async def list_bank_accounts(self, tenant_id: str) -> list[BankAccount]:
        rows = await self._select("bank_accounts", ACCOUNT_COLUMNS, {"clinic_id": f"eq.{tenant_id}"})
        return [account_from_row(row) for row in rows]

    async def get_bank_account(self, account_id: str) -> BankAccount:
        rows = await self._select("bank_accounts", ACCOUNT_COLUMNS, {"id": f"eq.{account_id}"})
        if not rows:
            raise AccountNotFoundError(f"Bank account {account_id} not found")
        return account_from_row(rows[0])

    async def list_revenues(self, tenant_id: str) -> list[RevenueTransaction]:
        rows = await self._select("revenues", REVENUE_COLUMNS, {"clinic_id": f"eq.{tenant_id}"})
        return [revenue_from_row(row) for row in rows]

    async def list_expenses(self, tenant_id: str) -> list[ExpenseTransaction]:
        rows = await self._select("expenses", EXPENSE_COLUMNS, {"clinic_id": f"eq.{tenant_id}"})
        return [expense_from_row(row) for row in rows]

    async def _patch_balance(
        self, account_id: str, balance: Decimal, expected: Decimal | None = None
    ) -> list[dict]:
        client = self._get_client()
        params = {"id": f"eq.{account_id}"}
        if expected is not None:
            params["or"] = f"(current_balance.eq.{expected},current_balance.is.null)"
        try:
            response = await client.patch(
                "/bank_accounts",
                params=params,
                json={"current_balance": str(balance)},
                headers={"Prefer": "return=representation"},
            )
        except httpx.HTTPError as exc:
            raise StoreError(f"Failed to update bank account {account_id}: {exc}") from exc
        self._check(response, f"update bank account {account_id}")
        return response.json()

    async def set_balances(self, balances: dict[str, Decimal]) -> None:
        written: list[str] = []
        for account_id, balance in balances.items():
            try:
                rows = await self._patch_balance(account_id, balance)
            except StoreError as exc:
                raise StoreError(
                    f"{exc} (already written: {', '.join(written) or 'none'})",
                    status_code=exc.status_code,
                ) from exc
            if not rows:
                raise AccountNotFoundError(f"Bank account {account_id} not found")
            written.append(account_id)

    async def increment_balance(self, account_id: str, delta_cents: int) -> Decimal:
        if self.balance_rpc is None:
            raise StoreError("No balance increment function configured (SUPABASE_BALANCE_RPC)")
        client = self._get_client()
        try:
            response = await client.post(
                f"/rpc/{self.balance_rpc}",
                json={"account_id": account_id, "delta": str(cents_to_decimal(delta_cents))},
            )
        except httpx.HTTPError as exc:
            raise StoreError(f"Failed to increment bank account {account_id}: {exc}") from exc
        self._check(response, f"increment bank account {account_id}")
        return Decimal(str(response.json()))

    async def compare_and_set_balance(
        self, account_id: str, expected: Decimal, new: Decimal
    ) -> bool:
        rows = await self._patch_balance(account_id, new, expected=expected)
        return bool(rows)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
