"""Runtime settings.

Sources, lowest to highest priority: defaults, CLI flags, ``.env``,
process environment (``SCORELEDGER__*``). Environment wins so that a
deployment can override whatever a launcher script passes.
"""

from __future__ import annotations

import argparse
import os
from collections.abc import Mapping

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from scoreledger.protocol.messages import Domain, checksum_address
from scoreledger.protocol.schema import MessageSchema, get_schema

ENV_PREFIX = "SCORELEDGER__"


class Settings(BaseModel):
    """Everything needed to stand up a ScoreService and its HTTP API."""

    variant: str = "pepenade_crush"
    domain_name: str | None = Field(default=None, description="Defaults to the variant's name")
    domain_version: str | None = None
    chain_id: int = 1337
    verifying_contract: str = "0x0000000000000000000000000000000000000000"
    backend_signer: str | None = None
    owner: str | None = None
    database_url: str = Field(default="", description="Empty for an in-memory store")
    host: str = "127.0.0.1"
    port: int = 8300

    @field_validator("variant")
    @classmethod
    def _known_variant(cls, v: str) -> str:
        get_schema(v)
        return v

    @field_validator("verifying_contract", "backend_signer", "owner")
    @classmethod
    def _address(cls, v: str | None) -> str | None:
        return checksum_address(v) if v else None

    @property
    def message_schema(self) -> MessageSchema:
        return get_schema(self.variant)

    def domain(self) -> Domain:
        schema = self.message_schema
        return Domain(
            name=self.domain_name or schema.domain_name,
            version=self.domain_version or schema.domain_version,
            chain_id=self.chain_id,
            verifying_contract=self.verifying_contract,
        )


def add_args(parser: argparse.ArgumentParser) -> None:
    """Register ``--ledger.*`` flags, one per Settings field."""
    for name, info in Settings.model_fields.items():
        flag = f"--ledger.{name}"
        kind = int if info.annotation is int else str
        parser.add_argument(flag, type=kind, default=None, help=info.description)


def _from_env(environ: Mapping[str, str]) -> dict[str, str]:
    out = {}
    for name in Settings.model_fields:
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None and value != "":
            out[name] = value
    return out


def load_settings(
    args: argparse.Namespace | None = None,
    environ: Mapping[str, str] | None = None,
    dotenv: bool = True,
) -> Settings:
    """Merge CLI args and environment into a validated Settings."""
    if dotenv and environ is None:
        load_dotenv()
    env = os.environ if environ is None else environ

    values: dict[str, object] = {}
    if args is not None:
        for name in Settings.model_fields:
            value = getattr(args, f"ledger.{name}", None)
            if value is not None:
                values[name] = value
    values.update(_from_env(env))
    return Settings(**values)


__all__ = ["ENV_PREFIX", "Settings", "add_args", "load_settings"]
