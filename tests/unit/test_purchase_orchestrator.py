"""Tests for the purchase orchestrator."""

import asyncio
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from iap_entitlements.errors import GatewayUnavailable
from iap_entitlements.models import (
    Product,
    PurchaseOutcome,
    PurchaseResult,
    PurchaseStatusKind,
)
from iap_entitlements.models.events import StateTopic
from iap_entitlements.repositories.catalog_cache import CatalogCache
from iap_entitlements.repositories.consumable_ledger import ConsumableLedger
from iap_entitlements.repositories.key_value_store import InMemoryKeyValueStore, KeyValueStore
from iap_entitlements.repositories.store_state import StoreState
from iap_entitlements.services.entitlement_reconciler import EntitlementReconciler
from iap_entitlements.services.event_dispatcher import StateEventDispatcher
from iap_entitlements.services.local_gateway import LocalStoreGateway
from iap_entitlements.services.purchase_orchestrator import PurchaseOrchestrator
from iap_entitlements.utils.clock import VirtualClock

LIFETIME = Product(id="nonconsumable.lifetime", category="one_time", price=Decimal("9.99"))
CREDITS = Product(id="credits.pack", category="consumable", price=Decimal("1.99"))
YEARLY = Product(id="subscription.yearly", category="auto_renewing", price=Decimal("19.99"))


class Harness:
    """Orchestrator wired to a local gateway and in-memory storage."""

    def __init__(self, storage=None):
        self.clock = VirtualClock(start_millis=1_700_000_000_000)
        self.dispatcher = StateEventDispatcher(clock=self.clock)
        self.gateway = LocalStoreGateway([LIFETIME, CREDITS, YEARLY], clock=self.clock)
        self.state = StoreState(self.dispatcher)
        self.ledger = ConsumableLedger(storage or InMemoryKeyValueStore(), self.dispatcher)
        self.catalog = CatalogCache(self.gateway)
        self.reconciler = EntitlementReconciler(
            self.gateway, self.catalog, self.state, clock=self.clock
        )
        self.orchestrator = PurchaseOrchestrator(
            self.gateway, self.state, self.ledger, self.reconciler
        )

    async def load(self):
        await self.catalog.load([LIFETIME.id, CREDITS.id, YEARLY.id])


@pytest.fixture
def harness():
    return Harness()


class TestSuccess:
    """Test verified successful purchases."""

    @pytest.mark.asyncio
    async def test_non_consumable(self, harness):
        await harness.load()
        status = await harness.orchestrator.purchase(LIFETIME)

        assert status.kind == PurchaseStatusKind.SUCCESS
        assert status.product_id == LIFETIME.id
        assert harness.state.purchase_status == status
        assert harness.state.entitlements.one_time == {LIFETIME.id}
        assert harness.gateway.finished_transaction_ids == [
            harness.gateway.history[0].transaction_id
        ]

    @pytest.mark.asyncio
    async def test_consumable_credits_ledger(self, harness):
        await harness.load()
        await harness.orchestrator.purchase(CREDITS)
        await harness.orchestrator.purchase(CREDITS)

        assert harness.ledger.get_balance(CREDITS.id) == 2
        assert harness.state.entitlements.one_time == frozenset()
        assert len(harness.gateway.finished_transaction_ids) == 2

    @pytest.mark.asyncio
    async def test_success_clears_pending(self, harness):
        await harness.load()
        harness.gateway.script_purchase(YEARLY.id, PurchaseOutcome.PENDING)
        await harness.orchestrator.purchase(YEARLY)
        assert harness.state.is_pending(YEARLY.id)

        await harness.orchestrator.purchase(YEARLY)

        assert not harness.state.is_pending(YEARLY.id)
        assert harness.state.entitlements.auto_renewing == {YEARLY.id}

    @pytest.mark.asyncio
    async def test_status_sequence(self, harness):
        await harness.load()
        statuses = []
        harness.dispatcher.subscribe(
            lambda event: statuses.append(event.payload["status"]["kind"]), StateTopic.STATUS
        )

        await harness.orchestrator.purchase(LIFETIME)

        assert statuses == ["unknown", "success"]

    @pytest.mark.asyncio
    async def test_reconcile_failure_still_succeeds(self, harness):
        await harness.load()

        async def broken_feed():
            raise ConnectionError("store offline")
            yield  # pragma: no cover

        harness.gateway.current_entitlements = broken_feed
        status = await harness.orchestrator.purchase(LIFETIME)

        assert status.kind == PurchaseStatusKind.SUCCESS
        assert len(harness.gateway.finished_transaction_ids) == 1

    @pytest.mark.asyncio
    async def test_finish_failure_still_succeeds(self, harness):
        await harness.load()

        async def broken_finish(transaction_id):
            raise ConnectionError("finish rejected")

        harness.gateway.finish = broken_finish
        status = await harness.orchestrator.purchase(CREDITS)

        assert status.kind == PurchaseStatusKind.SUCCESS
        assert harness.ledger.get_balance(CREDITS.id) == 1


class TestOtherOutcomes:
    """Test pending, cancelled and unknown outcomes."""

    @pytest.mark.asyncio
    async def test_pending(self, harness):
        await harness.load()
        harness.gateway.script_purchase(LIFETIME.id, PurchaseOutcome.PENDING)

        status = await harness.orchestrator.purchase(LIFETIME)

        assert status.kind == PurchaseStatusKind.PENDING
        assert harness.state.pending_product_ids == {LIFETIME.id}
        assert harness.gateway.finished_transaction_ids == []

    @pytest.mark.asyncio
    async def test_cancelled(self, harness):
        await harness.load()
        harness.gateway.script_purchase(LIFETIME.id, PurchaseOutcome.PENDING)
        harness.gateway.script_purchase(LIFETIME.id, PurchaseOutcome.USER_CANCELLED)
        await harness.orchestrator.purchase(LIFETIME)

        status = await harness.orchestrator.purchase(LIFETIME)

        assert status.kind == PurchaseStatusKind.CANCELLED
        assert harness.state.pending_product_ids == frozenset()
        assert harness.state.entitlements.one_time == frozenset()

    @pytest.mark.asyncio
    async def test_unknown_outcome_fails(self, harness):
        await harness.load()
        harness.gateway.script_purchase(LIFETIME.id, PurchaseOutcome.UNKNOWN)

        status = await harness.orchestrator.purchase(LIFETIME)

        assert status.kind == PurchaseStatusKind.FAILED
        assert status.error_type == "UnknownOutcome"

    @pytest.mark.asyncio
    async def test_unrecognized_result_fails(self, harness):
        await harness.load()

        async def odd_purchase(product):
            return "something else"

        harness.gateway.purchase = odd_purchase
        status = await harness.orchestrator.purchase(LIFETIME)

        assert status.kind == PurchaseStatusKind.FAILED
        assert status.error_type == "UnknownOutcome"


class TestFailures:
    """Test failed attempts."""

    @pytest.mark.asyncio
    async def test_unverified_transaction_not_finished(self, harness):
        await harness.load()
        harness.gateway.script_purchase(CREDITS.id, verified=False)

        status = await harness.orchestrator.purchase(CREDITS)

        assert status.kind == PurchaseStatusKind.FAILED
        assert status.error_type == "VerificationFailure"
        assert "invalid signature" in status.reason
        assert harness.gateway.finished_transaction_ids == []
        assert harness.ledger.get_balance(CREDITS.id) == 0

    @pytest.mark.asyncio
    async def test_gateway_error_fails(self, harness):
        await harness.load()
        harness.gateway.script_purchase(
            LIFETIME.id, error=GatewayUnavailable("purchase", ConnectionError("no network"))
        )

        status = await harness.orchestrator.purchase(LIFETIME)

        assert status.kind == PurchaseStatusKind.FAILED
        assert status.error_type == "GatewayUnavailable"
        assert status.reason.startswith("There was an error completing your purchase:")

    @pytest.mark.asyncio
    async def test_ledger_failure_not_finished(self):
        storage = MagicMock(spec=KeyValueStore)
        storage.get_int.return_value = 0
        storage.set_int.side_effect = OSError("disk full")
        harness = Harness(storage=storage)
        await harness.load()

        status = await harness.orchestrator.purchase(CREDITS)

        assert status.kind == PurchaseStatusKind.FAILED
        assert status.error_type == "LedgerIOFailure"
        assert harness.gateway.finished_transaction_ids == []

    @pytest.mark.asyncio
    async def test_failure_clears_pending(self, harness):
        await harness.load()
        harness.gateway.script_purchase(LIFETIME.id, PurchaseOutcome.PENDING)
        harness.gateway.script_purchase(LIFETIME.id, error=ConnectionError("boom"))
        await harness.orchestrator.purchase(LIFETIME)

        await harness.orchestrator.purchase(LIFETIME)

        assert harness.state.pending_product_ids == frozenset()


class TestPendingRace:
    """Test a resolution overtaking the pending report."""

    @pytest.mark.asyncio
    async def test_resolution_during_call_wins(self, harness):
        await harness.load()

        async def purchase_resolved_elsewhere(product):
            # The update feed resolves the product before this call returns.
            harness.state.remove_pending(product.id, from_update=True)
            return PurchaseResult.pending()

        harness.gateway.purchase = purchase_resolved_elsewhere
        status = await harness.orchestrator.purchase(LIFETIME)

        assert status.kind == PurchaseStatusKind.PENDING
        assert not harness.state.is_pending(LIFETIME.id)

    @pytest.mark.asyncio
    async def test_overlapping_cancel_does_not_block_pending(self, harness):
        await harness.load()
        release_first = asyncio.Event()
        results = [PurchaseResult.pending(), PurchaseResult.user_cancelled()]

        async def gated_purchase(product):
            result = results.pop(0)
            if result.outcome == PurchaseOutcome.PENDING:
                await release_first.wait()
            return result

        harness.gateway.purchase = gated_purchase
        first = asyncio.ensure_future(harness.orchestrator.purchase(LIFETIME))
        await asyncio.sleep(0)

        second = await harness.orchestrator.purchase(LIFETIME)
        assert second.kind == PurchaseStatusKind.CANCELLED

        release_first.set()
        status = await first

        assert status.kind == PurchaseStatusKind.PENDING
        assert harness.state.is_pending(LIFETIME.id)
