# ABOUTME: Tests for the Supabase ledger store adapter
# ABOUTME: Row mapping, pagination, compare-and-set, RPC increments, and HTTP errors

import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from clinicledger import supabase
from clinicledger.exceptions import (
    AccountNotFoundError,
    AuthenticationError,
    CredentialsNotFoundError,
    StoreError,
)
from clinicledger.supabase import (
    SupabaseLedgerStore,
    account_from_row,
    expense_from_row,
    get_credentials,
    revenue_from_row,
)
from clinicledger.types import ExpenseStatus

BASE_URL = "https://clinic.supabase.co/rest/v1"


@pytest.fixture(autouse=True)
def no_balance_rpc(monkeypatch):
    monkeypatch.delenv("SUPABASE_BALANCE_RPC", raising=False)


def make_store(handler, balance_rpc=None) -> SupabaseLedgerStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
    return SupabaseLedgerStore(client=client, balance_rpc=balance_rpc)


class TestCredentials:
    """Test reading Supabase credentials from the environment."""

    def test_prefers_service_role_key(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://clinic.supabase.co/")
        monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")
        monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
        assert get_credentials() == ("https://clinic.supabase.co", "service-key")

    def test_falls_back_to_anon_key(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://clinic.supabase.co")
        monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
        monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
        assert get_credentials()[1] == "anon-key"

    def test_missing(self, monkeypatch):
        for name in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_ANON_KEY"):
            monkeypatch.delenv(name, raising=False)
        with pytest.raises(CredentialsNotFoundError):
            get_credentials()


class TestRowMapping:
    """Test mapping of clinic table rows to records."""

    def test_account_row(self):
        account = account_from_row({
            "id": "a1",
            "clinic_id": "c1",
            "nome_conta": "Caixa",
            "initial_balance": 100.5,
            "current_balance": 250.1,
        })
        assert account.initial_balance == Decimal("100.5")
        assert account.current_balance == Decimal("250.1")
        assert account.name == "Caixa"

    def test_account_without_current_balance_uses_initial(self):
        account = account_from_row({"id": "a1", "initial_balance": 80, "current_balance": None})
        assert account.current_balance == Decimal("80")

    def test_revenue_row(self):
        revenue = revenue_from_row({
            "id": "r1",
            "clinic_id": "c1",
            "valor": 90.0,
            "valor_bruto": 100.0,
            "valor_liquido": 96.3,
            "data_competencia": "2025-01-10",
            "data_recebimento": "2025-02-09",
            "forma_pagamento": "Cartão de Crédito",
            "parcelas": "3x",
            "recebimento_parcelas": None,
            "boleto_due_date": None,
            "cheque_due_date": None,
            "bank_account_id": "a1",
        })
        assert revenue.gross_amount == Decimal("100.00")
        assert revenue.net_amount == Decimal("96.30")
        assert revenue.total == Decimal("96.30")
        assert revenue.competence_date == date(2025, 1, 10)
        assert revenue.payment_date == date(2025, 2, 9)
        assert revenue.installment_count == 3

    def test_revenue_row_fallbacks(self):
        revenue = revenue_from_row({
            "id": 7,
            "valor": 55.0,
            "parcelas": None,
            "cheque_due_date": "2025-03-01",
            "recebimento_parcelas": '[{"vencimento": "2025-03-01"}]',
        })
        assert revenue.id == "7"
        assert revenue.gross_amount == Decimal("55.00")
        assert revenue.net_amount is None
        assert revenue.installment_count == 1
        assert revenue.due_date == date(2025, 3, 1)
        assert revenue.manual_installment_dates == '[{"vencimento": "2025-03-01"}]'

    def test_expense_row(self):
        expense = expense_from_row({
            "id": "e1",
            "valor": 42.1,
            "status": "paid",
            "data_vencimento": "2025-01-05",
            "data_pagamento": "2025-01-04",
            "bank_account_id": "a1",
        })
        assert expense.status == ExpenseStatus.PAID
        assert expense.amount == Decimal("42.10")
        assert expense.payment_date == date(2025, 1, 4)

    def test_expense_unknown_status_is_pending(self):
        assert expense_from_row({"id": "e1", "status": "overdue"}).status == ExpenseStatus.PENDING


class TestReads:
    """Test paginated reads through PostgREST."""

    @pytest.mark.asyncio
    async def test_lists_tenant_accounts(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[
                {"id": "a1", "clinic_id": "c1", "initial_balance": 10, "current_balance": 12},
            ])

        store = make_store(handler)
        accounts = await store.list_bank_accounts("c1")

        assert [a.id for a in accounts] == ["a1"]
        assert seen[0].url.path == "/rest/v1/bank_accounts"
        assert seen[0].url.params["clinic_id"] == "eq.c1"

    @pytest.mark.asyncio
    async def test_paginates_until_short_page(self, monkeypatch):
        monkeypatch.setattr(supabase, "PAGE_SIZE", 2)
        pages = [
            [{"id": "e1", "valor": 1}, {"id": "e2", "valor": 2}],
            [{"id": "e3", "valor": 3}],
        ]
        offsets = []

        def handler(request: httpx.Request) -> httpx.Response:
            offsets.append(request.url.params["offset"])
            return httpx.Response(200, json=pages[len(offsets) - 1])

        store = make_store(handler)
        expenses = await store.list_expenses("c1")

        assert [e.id for e in expenses] == ["e1", "e2", "e3"]
        assert offsets == ["0", "2"]

    @pytest.mark.asyncio
    async def test_missing_account(self):
        store = make_store(lambda request: httpx.Response(200, json=[]))
        with pytest.raises(AccountNotFoundError):
            await store.get_bank_account("nope")

    @pytest.mark.asyncio
    async def test_auth_failure(self):
        store = make_store(lambda request: httpx.Response(401, json={"message": "JWT expired"}))
        with pytest.raises(AuthenticationError):
            await store.list_revenues("c1")

    @pytest.mark.asyncio
    async def test_server_error(self):
        store = make_store(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(StoreError) as exc_info:
            await store.list_revenues("c1")
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        store = make_store(handler)
        with pytest.raises(StoreError):
            await store.list_expenses("c1")


class TestWrites:
    """Test balance writes."""

    @pytest.mark.asyncio
    async def test_compare_and_set_filters_on_expected_balance(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=[{"id": "a1"}])

        store = make_store(handler)
        assert await store.compare_and_set_balance("a1", Decimal("100.00"), Decimal("150.00"))

        request = requests[0]
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.a1"
        assert "current_balance.eq.100.00" in request.url.params["or"]
        assert json.loads(request.content) == {"current_balance": "150.00"}

    @pytest.mark.asyncio
    async def test_compare_and_set_lost_race(self):
        store = make_store(lambda request: httpx.Response(200, json=[]))
        assert not await store.compare_and_set_balance("a1", Decimal("1"), Decimal("2"))
        assert not store.supports_atomic_increment

    @pytest.mark.asyncio
    async def test_increment_through_rpc(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=112.5)

        store = make_store(handler, balance_rpc="increment_bank_balance")
        assert store.supports_atomic_increment
        assert await store.increment_balance("a1", 1250) == Decimal("112.5")
        assert requests[0].url.path == "/rest/v1/rpc/increment_bank_balance"
        assert json.loads(requests[0].content) == {"account_id": "a1", "delta": "12.50"}

    @pytest.mark.asyncio
    async def test_increment_without_rpc(self):
        store = make_store(lambda request: httpx.Response(200, json=0))
        with pytest.raises(StoreError):
            await store.increment_balance("a1", 100)

    @pytest.mark.asyncio
    async def test_set_balances_reports_partial_progress(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["id"] == "eq.a2":
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, json=[{"id": "a1"}])

        store = make_store(handler)
        with pytest.raises(StoreError, match="already written: a1"):
            await store.set_balances({"a1": Decimal("10.00"), "a2": Decimal("20.00")})
