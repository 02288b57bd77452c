import os

from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up the environment variable names the original bot used."""

        super().model_post_init(__context)

        if not self.plutus_api_url:
            fallback = os.getenv("API_URL")
            object.__setattr__(self, "plutus_api_url", fallback or "https://plutus-move.onrender.com")

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="auto",
        description="json, console, or auto (console on a terminal, json otherwise)",
    )

    # Plutus API (market catalog, payload builder, positions)
    plutus_api_url: str = Field(
        default="",
        description="Base URL of the Plutus lending API",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout applied to every Plutus API call",
    )

    # Aptos node and custodial signer
    aptos_node_url: str = Field(
        default="https://fullnode.testnet.aptoslabs.com/v1",
        description="Aptos fullnode REST endpoint (including the /v1 prefix)",
    )
    custodial_private_key: str = Field(
        default="",
        description="Hex-encoded Ed25519 private key of the custodial account",
        validation_alias=AliasChoices("custodial_private_key", "APTOS_PRIVATE_KEY"),
    )
    custodial_account_address: str = Field(
        default="",
        description="Override for the custodial account address (rotated keys)",
    )
    max_gas_amount: int = Field(default=200_000, ge=1, description="Max gas units per transaction")
    gas_unit_price: int = Field(default=100, ge=1, description="Gas unit price in octas")
    transaction_expiration_seconds: int = Field(
        default=60,
        ge=1,
        description="Seconds from build time until a transaction expires",
    )
    chain_request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout applied to each Aptos node request",
    )
    finality_timeout_seconds: float = Field(
        default=90.0,
        gt=0,
        description="Max seconds to wait for a broadcast transaction to commit",
    )
    finality_poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Initial polling interval while waiting for finality",
    )

    # Conversation sessions
    session_ttl_seconds: int = Field(
        default=0,
        ge=0,
        description="Evict sessions idle for longer than this (0 disables eviction)",
    )
    wallet_address_min_length: int = Field(
        default=10,
        ge=3,
        description="Minimum accepted length of a linked wallet address",
    )

    @model_validator(mode="after")
    def _finality_outlasts_expiration(self) -> "Settings":
        # A transaction that timed out must already be expired
        if self.finality_timeout_seconds <= self.transaction_expiration_seconds:
            raise ValueError(
                "finality_timeout_seconds must be greater than transaction_expiration_seconds"
            )
        return self

    @property
    def has_custodial_key(self) -> bool:
        return bool(self.custodial_private_key.strip())


# Global settings instance
settings = Settings()
