#!/usr/bin/env python3
"""Example: Quickstart

Demonstrates building a DID for an account address, diagnosing it, and
registering the address directly with an AgentRegistry.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install agent-registry
"""
from __future__ import annotations

import agent_registry
from agent_registry import (
    AgentRegistry,
    DIDAlreadyRegisteredError,
    RegistryConfig,
    did_for_address,
    get_validation_details,
)


def main() -> None:
    print(f"agent-registry version: {agent_registry.__version__}")

    address = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1"

    # Step 1: Build a DID whose payload encodes the address
    did = did_for_address(address, method="agent")
    print(f"DID: {did}")

    # Step 2: Diagnose it against the address
    result = get_validation_details(did, address)
    print(f"Validation: valid={result.valid} stage={result.stage.value}")

    # Step 3: Register the address directly
    registry = AgentRegistry(RegistryConfig(registration_fee=10))
    record = registry.register_direct(
        did=did,
        description="bot",
        service_endpoint="https://a.example/ep",
        caller=address,
        attached_value=registry.registration_fee,
    )
    print(f"Registered agent {record.agent_id} for {record.owner_address}")

    # Step 4: A second address cannot reuse the DID
    try:
        registry.register_direct(
            did=did,
            description="copycat",
            service_endpoint="https://b.example/ep",
            caller="0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb2",
            attached_value=registry.registration_fee,
        )
    except DIDAlreadyRegisteredError as exc:
        print(f"Rejected: {exc}")

    print(f"Agents registered: {len(registry)}")
    print("\nQuickstart complete.")


if __name__ == "__main__":
    main()
