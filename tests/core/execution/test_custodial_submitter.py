"""
Tests for the custodial submitter: payload conversion, global
serialization of broadcasts, and sequence bookkeeping on failure.
"""

import asyncio
from decimal import Decimal

import pytest

from plutus.core.conversation import (
    Action,
    ConfirmTransaction,
    ConversationEngine,
    Market,
    RequestMarkets,
    RequestWalletLink,
    SelectMarket,
    SessionStore,
    SubmitAmount,
    SubmitWalletAddress,
    Success,
    TransactionPayload,
)
from plutus.core.errors import ChainError
from plutus.core.execution import (
    CustodialSigner,
    CustodialSubmitter,
    SequenceNumberManager,
    UnconfiguredSubmitter,
    to_entry_function_payload,
)
from plutus.providers.aptos import (
    AptosNodeError,
    AptosTransactionResult,
    AptosTransactionStatus,
)
from plutus.providers.base import MarketCatalogClient, PayloadBuilderClient


SIGNER_KEY = "0x" + "11" * 32


class FakeAptosNode:
    """
    In-memory stand-in for AptosRestClient.

    Reports only committed sequence numbers and rejects any submission whose
    sequence number was already used, like a real mempool would.
    """

    def __init__(self, commit_delay=0.01, success=True, finality=True):
        self.commit_delay = commit_delay
        self.success = success
        self.finality = finality
        self.committed = 0
        self.used = set()
        self.submitted = []
        self.rejected = []
        self.fail_submit = None
        self.poll_error = None

    async def get_sequence_number(self, address):
        await asyncio.sleep(0)
        return self.committed

    async def encode_submission(self, request):
        await asyncio.sleep(0)
        return f"signing:{request['sequence_number']}".encode()

    async def submit_transaction(self, signed):
        await asyncio.sleep(0)
        if self.fail_submit:
            raise self.fail_submit
        sequence = int(signed["sequence_number"])
        if sequence in self.used or sequence < self.committed:
            self.rejected.append(sequence)
            raise AptosNodeError("SEQUENCE_NUMBER_TOO_OLD", status_code=400)
        assert signed["signature"]["type"] == "ed25519_signature"
        self.used.add(sequence)
        self.submitted.append(signed)
        return f"0xhash{sequence}"

    async def wait_for_transaction(self, tx_hash, timeout_s=60.0, poll_interval_s=1.0):
        if self.poll_error is not None:
            error, self.poll_error = self.poll_error, None
            raise error
        await asyncio.sleep(self.commit_delay)
        if not self.finality:
            return AptosTransactionResult(tx_hash=tx_hash, status=AptosTransactionStatus.EXPIRED)
        self.committed += 1
        if not self.success:
            return AptosTransactionResult(
                tx_hash=tx_hash,
                status=AptosTransactionStatus.FAILED,
                vm_status="Move abort: EINSUFFICIENT_BALANCE",
            )
        return AptosTransactionResult(tx_hash=tx_hash, status=AptosTransactionStatus.COMMITTED, version=100)

    async def close(self):
        return None


def make_payload(amount="10", wallet="0xabc123def456") -> TransactionPayload:
    return TransactionPayload(
        data={
            "function": "0xcafe::lending::supply",
            "typeArguments": ["0x1::aptos_coin::AptosCoin"],
            "functionArguments": ["0xcafe", amount],
        },
        action=Action.SUPPLY,
        market_id="0xcafe",
        coin_address="0x1::aptos_coin::AptosCoin",
        amount=Decimal(amount),
        wallet_address=wallet,
    )


@pytest.fixture
def node():
    return FakeAptosNode()


@pytest.fixture
def submitter(node):
    return CustodialSubmitter(
        node,
        CustodialSigner(SIGNER_KEY),
        finality_timeout_s=5,
        poll_interval_s=0.01,
    )


# =============================================================================
# Payload conversion
# =============================================================================

class TestEntryFunctionPayload:

    def test_converts_builder_shape(self):
        entry = to_entry_function_payload(make_payload().data)

        assert entry == {
            "type": "entry_function_payload",
            "function": "0xcafe::lending::supply",
            "type_arguments": ["0x1::aptos_coin::AptosCoin"],
            "arguments": ["0xcafe", "10"],
        }

    def test_accepts_snake_case(self):
        entry = to_entry_function_payload(
            {"function": "0x1::coin::transfer", "type_arguments": ["0x1::aptos_coin::AptosCoin"], "arguments": ["0x2", "1"]}
        )
        assert entry["arguments"] == ["0x2", "1"]

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"function": "transfer"},
            {"function": "0x1::coin::transfer", "functionArguments": "0x2"},
        ],
    )
    def test_rejects_malformed(self, data):
        with pytest.raises(ChainError):
            to_entry_function_payload(data)


# =============================================================================
# Submission
# =============================================================================

class TestCustodialSubmitter:

    @pytest.mark.asyncio
    async def test_submit_returns_committed_hash(self, submitter, node):
        tx_hash = await submitter.submit(make_payload())

        assert tx_hash == "0xhash0"
        signed = node.submitted[0]
        assert signed["sender"] == submitter.address
        assert signed["sequence_number"] == "0"
        assert signed["payload"]["type"] == "entry_function_payload"
        assert not submitter.busy

    @pytest.mark.asyncio
    async def test_concurrent_submissions_use_distinct_sequences(self, submitter, node):
        hashes = await asyncio.gather(*(submitter.submit(make_payload(str(i + 1))) for i in range(5)))

        assert len(set(hashes)) == 5
        assert node.rejected == []
        assert sorted(int(s["sequence_number"]) for s in node.submitted) == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_broadcast_failure_releases_sequence(self, submitter, node):
        node.fail_submit = AptosNodeError("mempool full", status_code=503)

        with pytest.raises(ChainError) as exc_info:
            await submitter.submit(make_payload())
        assert exc_info.value.context.details["broadcast"] is False

        node.fail_submit = None
        assert await submitter.submit(make_payload()) == "0xhash0"

    @pytest.mark.asyncio
    async def test_failed_execution_raises_with_vm_status(self, submitter, node):
        node.success = False

        with pytest.raises(ChainError) as exc_info:
            await submitter.submit(make_payload())

        error = exc_info.value
        assert error.tx_hash == "0xhash0"
        assert "EINSUFFICIENT_BALANCE" in error.vm_status
        assert error.context.details["broadcast"] is True

    @pytest.mark.asyncio
    async def test_finality_timeout_raises(self, submitter, node):
        node.finality = False

        with pytest.raises(ChainError) as exc_info:
            await submitter.submit(make_payload())

        assert exc_info.value.tx_hash == "0xhash0"

    @pytest.mark.asyncio
    async def test_lost_poll_keeps_sequence_in_flight(self, submitter, node):
        node.poll_error = AptosNodeError("service unavailable", status_code=503)

        with pytest.raises(ChainError) as exc_info:
            await submitter.submit(make_payload())
        assert exc_info.value.tx_hash == "0xhash0"
        assert exc_info.value.context.details["broadcast"] is True

        # The first transaction is still pending, so the next one must not reuse 0
        assert await submitter.submit(make_payload("2")) == "0xhash1"
        assert node.rejected == []

    @pytest.mark.asyncio
    async def test_unconfirmed_sequence_is_not_reused(self, submitter, node):
        node.finality = False
        with pytest.raises(ChainError):
            await submitter.submit(make_payload())

        node.finality = True
        assert await submitter.submit(make_payload("2")) == "0xhash1"
        assert node.rejected == []

    @pytest.mark.asyncio
    async def test_malformed_payload_never_reaches_node(self, submitter, node):
        bad = TransactionPayload(
            data={"function": "nope"},
            action=Action.SUPPLY,
            market_id="m",
            coin_address="0x1::c::C",
            amount=Decimal("1"),
            wallet_address="0xabc123def456",
        )

        with pytest.raises(ChainError):
            await submitter.submit(bad)
        assert node.submitted == []

    @pytest.mark.asyncio
    async def test_unconfigured_submitter_always_fails(self):
        with pytest.raises(ChainError):
            await UnconfiguredSubmitter().submit(make_payload())


class StallingNode(FakeAptosNode):
    """Blocks the first encode_submission call until it is cancelled."""

    def __init__(self):
        super().__init__()
        self.stalled = asyncio.Event()
        self.stall = True

    async def encode_submission(self, request):
        if self.stall:
            self.stall = False
            self.stalled.set()
            await asyncio.Event().wait()
        return await super().encode_submission(request)


@pytest.mark.asyncio
async def test_cancelled_broadcast_releases_sequence():
    node = StallingNode()
    sequences = SequenceNumberManager(node)
    submitter = CustodialSubmitter(
        node,
        CustodialSigner(SIGNER_KEY),
        sequence_manager=sequences,
        finality_timeout_s=5,
        poll_interval_s=0.01,
    )

    task = asyncio.create_task(submitter.submit(make_payload()))
    await node.stalled.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    state = await sequences.get_state(submitter.address)
    assert state.in_flight == set()
    assert not submitter.busy

    # Nothing was sent at 0, so it is handed out again
    assert await submitter.submit(make_payload()) == "0xhash0"
    assert node.rejected == []


# =============================================================================
# Engine + submitter
# =============================================================================

class OneMarketCatalog(MarketCatalogClient):
    async def fetch_markets(self):
        return [Market(id="0xcafe", coin_address="0x1::aptos_coin::AptosCoin", supply_apr=2, borrow_apr=4, price=8)]


class EchoPayloads(PayloadBuilderClient):
    async def build_payload(self, action, coin_address, market_id, amount, wallet_address):
        return make_payload(str(amount), wallet_address)


@pytest.mark.asyncio
async def test_concurrent_confirms_from_different_chats(submitter, node):
    engine = ConversationEngine(SessionStore(), OneMarketCatalog(), EchoPayloads(), submitter)

    for chat_id, wallet in ((1, "0xaaaa111111"), (2, "0xbbbb222222")):
        await engine.handle(chat_id, RequestWalletLink())
        await engine.handle(chat_id, SubmitWalletAddress(text=wallet))
        await engine.handle(chat_id, RequestMarkets(action=Action.SUPPLY))
        await engine.handle(chat_id, SelectMarket(market_index=0))
        await engine.handle(chat_id, SubmitAmount(text=str(chat_id * 10)))

    first, second = await asyncio.gather(
        engine.handle(1, ConfirmTransaction()),
        engine.handle(2, ConfirmTransaction()),
    )

    assert isinstance(first, Success)
    assert isinstance(second, Success)
    assert first.tx_hash != second.tx_hash
    assert node.rejected == []
    assert len(node.submitted) == 2
