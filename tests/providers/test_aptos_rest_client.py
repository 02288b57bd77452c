"""
Tests for the Aptos fullnode REST client.
"""

import httpx
import pytest

from plutus.providers.aptos import AptosNodeError, AptosRestClient, AptosTransactionStatus


NODE_URL = "http://aptos.test/v1"
ADDRESS = "0x" + "ab" * 32


def make_client(handler, **kwargs) -> AptosRestClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AptosRestClient(node_url=NODE_URL, timeout_s=1, client=http, **kwargs)


@pytest.mark.asyncio
async def test_get_sequence_number():
    def handler(request):
        assert str(request.url) == f"{NODE_URL}/accounts/{ADDRESS}"
        return httpx.Response(200, json={"sequence_number": "42", "authentication_key": ADDRESS})

    client = make_client(handler)
    assert await client.get_sequence_number(ADDRESS) == 42
    await client.close()


@pytest.mark.asyncio
async def test_missing_account_raises_node_error():
    client = make_client(
        lambda request: httpx.Response(404, json={"message": "Account not found", "error_code": "account_not_found"})
    )

    with pytest.raises(AptosNodeError) as exc_info:
        await client.get_sequence_number(ADDRESS)

    assert exc_info.value.status_code == 404
    assert exc_info.value.error_code == "account_not_found"


@pytest.mark.asyncio
async def test_read_retries_server_errors():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(502)
        return httpx.Response(200, json={"sequence_number": "7"})

    client = make_client(handler)

    assert await client.get_sequence_number(ADDRESS) == 7
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_encode_submission_returns_bytes():
    def handler(request):
        assert request.url.path == "/v1/transactions/encode_submission"
        return httpx.Response(200, json="0xdeadbeef")

    client = make_client(handler)
    assert await client.encode_submission({"sender": ADDRESS}) == bytes.fromhex("deadbeef")


@pytest.mark.asyncio
async def test_submit_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, json={"message": "internal"})

    client = make_client(handler)

    with pytest.raises(AptosNodeError):
        await client.submit_transaction({"sender": ADDRESS})
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_submit_returns_hash():
    client = make_client(lambda request: httpx.Response(202, json={"hash": "0xfeed", "type": "pending_transaction"}))
    assert await client.submit_transaction({"sender": ADDRESS}) == "0xfeed"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,body,status",
    [
        (404, {"message": "not found"}, AptosTransactionStatus.PENDING),
        (200, {"type": "pending_transaction"}, AptosTransactionStatus.PENDING),
        (
            200,
            {"type": "user_transaction", "success": True, "version": "9", "vm_status": "Executed successfully"},
            AptosTransactionStatus.COMMITTED,
        ),
        (
            200,
            {"type": "user_transaction", "success": False, "version": "9", "vm_status": "Move abort"},
            AptosTransactionStatus.FAILED,
        ),
    ],
)
async def test_get_transaction_status(status_code, body, status):
    client = make_client(lambda request: httpx.Response(status_code, json=body))

    result = await client.get_transaction("0xfeed")

    assert result.status == status


@pytest.mark.asyncio
async def test_wait_for_transaction_polls_until_committed():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(404, json={"message": "not found"})
        return httpx.Response(200, json={"type": "user_transaction", "success": True, "version": "12", "gas_used": "8"})

    client = make_client(handler)
    result = await client.wait_for_transaction("0xfeed", timeout_s=5, poll_interval_s=0.01)

    assert result.status == AptosTransactionStatus.COMMITTED
    assert result.version == 12
    assert result.gas_used == 8
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_wait_for_transaction_times_out():
    client = make_client(lambda request: httpx.Response(200, json={"type": "pending_transaction"}))

    result = await client.wait_for_transaction("0xfeed", timeout_s=0.05, poll_interval_s=0.01)

    assert result.status == AptosTransactionStatus.EXPIRED
