"""
Custodial Execution Layer

Everything needed to put a built payload on chain with the shared custodial
account:
- CustodialSubmitter: serialized build/sign/broadcast, then await finality
- SequenceNumberManager: tracks the account's sequence numbers
- CustodialSigner: Ed25519 key loaded from configuration

Usage:
    from plutus.core.execution import CustodialSubmitter, CustodialSigner

    submitter = CustodialSubmitter(
        client=AptosRestClient(),
        signer=CustodialSigner(settings.custodial_private_key),
    )
    tx_hash = await submitter.submit(payload)
"""

from .sequence_manager import SequenceNumberManager, SequenceState
from .signer import CustodialSigner, SignerConfigError, derive_account_address, parse_private_key
from .submitter import CustodialSubmitter, UnconfiguredSubmitter, to_entry_function_payload

__all__ = [
    "CustodialSubmitter",
    "UnconfiguredSubmitter",
    "to_entry_function_payload",
    "SequenceNumberManager",
    "SequenceState",
    "CustodialSigner",
    "SignerConfigError",
    "derive_account_address",
    "parse_private_key",
]
