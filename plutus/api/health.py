from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from ..config import settings
from ..providers.aptos import AptosRestClient
from ..providers.base import Provider
from ..providers.plutus_api import PlutusAPIProvider

router = APIRouter()


def get_health_providers() -> List[Provider]:
    """Fresh clients for each check; the endpoint closes them"""
    return [PlutusAPIProvider(), AptosRestClient()]


@router.get("/healthz")
async def health_check(providers: List[Provider] = Depends(get_health_providers)) -> Dict[str, Any]:
    """Report the Plutus API and Aptos node status"""

    provider_status = {}
    try:
        for provider in providers:
            provider_status[provider.name] = await provider.health_check()
    finally:
        for provider in providers:
            await provider.close()

    # "unavailable" means not configured, which is not a failure
    all_healthy = all(
        status["status"] in ["healthy", "unavailable"]
        for status in provider_status.values()
    )
    available_providers = sum(
        1 for status in provider_status.values()
        if status["status"] == "healthy"
    )

    return {
        "status": "healthy" if all_healthy and available_providers > 0 else "degraded",
        "providers": provider_status,
        "available_providers": available_providers,
        "total_providers": len(provider_status),
        "custodial_signer": settings.has_custodial_key,
    }
