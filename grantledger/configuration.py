"""Mini README: Centralised configuration for the grant ledger service.

Structure:
    * GrantLedgerSettings - Pydantic model describing runtime configuration.
    * get_settings - cached accessor for environment-aware settings.

Usage:
    Import ``get_settings`` to read ``GRANTLEDGER_*`` environment variables
    (or a local ``.env`` file). Settings cover the API bind address, the
    display unit used by budget forms, the role claim that marks
    administrators, and a few presentation defaults. The object is cached so
    validation runs once per process.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, validator
from pydantic_settings import BaseSettings


class GrantLedgerSettings(BaseSettings):
    """Runtime configuration for the grant ledger service."""

    environment: str = Field(
        "development",
        description="Environment label controlling debug toggles and logging levels.",
    )
    interface_host: str = Field(
        "0.0.0.0",
        description="Network interface for the API service to bind to.",
    )
    interface_port: int = Field(
        8000,
        description="Default port the API service exposes.",
        ge=1,
        le=65535,
    )
    log_level: str = Field(
        "INFO",
        description="Root logging level applied when the service starts.",
    )
    display_unit_scale: int = Field(
        1000,
        description=(
            "Multiplier between the units typed into budget forms and the stored"
            " base currency units. Forms are filled in thousands by default."
        ),
        ge=1,
    )
    admin_role: str = Field(
        "admin",
        description="Role claim that marks an identity as an administrative actor.",
    )
    recent_expense_limit: int = Field(
        5,
        description="Number of expenses shown in the collapsed recent history list.",
        ge=1,
    )
    auto_claim_projects: bool = Field(
        True,
        description=(
            "Record the identity id on projects matched by email during routing so"
            " later logins match by id as well."
        ),
    )
    seed_demo_data: bool = Field(
        True,
        description="Populate the in-memory store with a demonstration grant.",
    )

    class Config:
        env_prefix = "GRANTLEDGER_"
        env_file = ".env"
        case_sensitive = False

    @validator("admin_role", pre=True)
    def _normalise_role(cls, value: str) -> str:
        """Role claims are compared case-insensitively."""

        role = str(value).strip().lower()
        if not role:
            raise ValueError("admin_role must not be blank")
        return role

    @validator("log_level", pre=True)
    def _normalise_level(cls, value: str) -> str:
        return str(value).strip().upper()


@lru_cache()
def get_settings() -> GrantLedgerSettings:
    """Return cached settings, ensuring consistent configuration across modules."""

    return GrantLedgerSettings()
