#!/usr/bin/env python3
"""Example: Delegated Registration

Demonstrates an agent signing a registration request off-path and a
relayer submitting it, then shows that replaying the same request fails.

Usage:
    python examples/02_delegated_registration.py

Requirements:
    pip install agent-registry
"""
from __future__ import annotations

import time

from eth_account import Account

import agent_registry
from agent_registry import (
    AgentRegistry,
    DelegatedRegistration,
    EventLog,
    NonceMismatchError,
    TypedDataSigner,
    did_for_address,
)


def main() -> None:
    print(f"agent-registry version: {agent_registry.__version__}")

    # Step 1: The agent holds a key; the relayer pays the fee
    agent = Account.create()
    relayer = "0xcccccccccccccccccccccccccccccccccccccccc"

    events = EventLog()
    registry = AgentRegistry(event_log=events)

    # Step 2: The agent signs a request bound to its current nonce
    request = DelegatedRegistration(
        agent_address=agent.address,
        did=did_for_address(agent.address),
        description="relayed agent",
        service_endpoint="https://relayed.example/rpc",
        nonce=registry.get_nonce(agent.address),
        expiry=int(time.time()) + 600,
    )
    signature = TypedDataSigner(registry.config.domain).sign(request, agent.key)
    print(f"Signature: 0x{signature.hex()[:16]}...")

    # Step 3: The relayer submits it
    record = registry.register_delegated(
        request, signature, relayer=relayer, attached_value=registry.registration_fee
    )
    print(f"Registered agent {record.agent_id}; nonce now {registry.get_nonce(agent.address)}")

    # Step 4: Replaying the same request is refused
    try:
        registry.register_delegated(
            request, signature, relayer=relayer, attached_value=registry.registration_fee
        )
    except NonceMismatchError as exc:
        print(f"Replay rejected: {exc}")

    for line in events.drain_buffer():
        print(f"Event: {line}")

    print("\nDelegated registration complete.")


if __name__ == "__main__":
    main()
