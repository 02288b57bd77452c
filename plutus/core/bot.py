"""
Bot wiring.

Builds the process-wide ConversationEngine from settings: the Plutus API
provider serves markets, payloads and positions, and the custodial
submitter signs with the configured Aptos key. Without a key the bot still
browses and quotes, but every confirmation fails with a chain error.
"""

import logging
from typing import Optional

from ..config import Settings, settings
from ..providers.aptos import AptosRestClient
from ..providers.base import ChainSubmitter
from ..providers.plutus_api import PlutusAPIProvider
from .conversation import ConversationEngine, SessionStore
from .execution import CustodialSigner, CustodialSubmitter, UnconfiguredSubmitter


_engine: Optional[ConversationEngine] = None
_logger = logging.getLogger(__name__)


def _create_submitter(config: Settings) -> ChainSubmitter:
    if not config.has_custodial_key:
        _logger.warning("No custodial key configured; transaction confirmations will fail")
        return UnconfiguredSubmitter()

    signer = CustodialSigner(
        config.custodial_private_key,
        account_address=config.custodial_account_address or None,
    )
    client = AptosRestClient(
        node_url=config.aptos_node_url,
        timeout_s=config.chain_request_timeout_seconds,
    )
    _logger.info(f"Custodial submitter ready for {signer.address} via {config.aptos_node_url}")
    return CustodialSubmitter(
        client,
        signer,
        max_gas_amount=config.max_gas_amount,
        gas_unit_price=config.gas_unit_price,
        expiration_s=config.transaction_expiration_seconds,
        finality_timeout_s=config.finality_timeout_seconds,
        poll_interval_s=config.finality_poll_interval_seconds,
    )


def create_engine(config: Optional[Settings] = None) -> ConversationEngine:
    """Build an engine wired to the real providers."""
    config = config or settings
    plutus = PlutusAPIProvider(
        base_url=config.plutus_api_url,
        timeout_s=config.request_timeout_seconds,
    )
    engine = ConversationEngine(
        store=SessionStore(ttl_seconds=config.session_ttl_seconds),
        catalog=plutus,
        payloads=plutus,
        submitter=_create_submitter(config),
        positions=plutus,
        wallet_address_min_length=config.wallet_address_min_length,
    )
    _logger.info(f"Conversation engine initialized against {config.plutus_api_url}")
    return engine


def get_engine() -> ConversationEngine:
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


async def close_engine() -> None:
    """Close the HTTP clients held by the shared engine."""
    global _engine
    if _engine is None:
        return
    engine, _engine = _engine, None
    await engine.submitter.close()
    if isinstance(engine.catalog, PlutusAPIProvider):
        await engine.catalog.close()
