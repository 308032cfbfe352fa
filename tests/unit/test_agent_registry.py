"""Tests for agent_registry.registry.agent_registry."""
from __future__ import annotations

import dataclasses
import json
import logging
import threading
from pathlib import Path

import pytest
from eth_account import Account

from agent_registry.addresses import NULL_ADDRESS, normalize_address
from agent_registry.config import RegistryConfig
from agent_registry.did import (
    AddressValidator,
    ValidationResult,
    ValidationStage,
    did_for_address,
)
from agent_registry.registry import (
    AddressAlreadyRegisteredError,
    AgentNotFoundError,
    AgentRegistered,
    AgentRegistry,
    DIDAlreadyRegisteredError,
    DIDValidationError,
    EmptyDIDError,
    EmptyServiceEndpointError,
    EndpointAlreadyRegisteredError,
    EventLog,
    InsufficientFeeError,
    InvalidAgentAddressError,
    NonceMismatchError,
    RegistryError,
    RegistryStateError,
    RequestExpiredError,
    ServiceEndpointUpdated,
    SignatureMismatchError,
)
from agent_registry.signing import (
    UINT256_MAX,
    DelegatedRegistration,
    SignatureRecoverer,
    StructuredDataHasher,
    TypedDataEncodingError,
    TypedDataSigner,
)

FEE = 100
NOW = 1_700_000_000

ADDRESS_A = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1"
ADDRESS_B = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb2"
RELAYER = "0xcccccccccccccccccccccccccccccccccccccccc"

AGENT_KEY = "0x" + "11" * 32
OTHER_KEY = "0x" + "22" * 32

ENDPOINT_A = "https://a.example/ep"
ENDPOINT_B = "https://b.example/ep"


# ---------------------------------------------------------------------------
# Fixtures and helpers
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class FakeClock:
    now: int = NOW

    def __call__(self) -> int:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def registry(clock: FakeClock) -> AgentRegistry:
    return AgentRegistry(RegistryConfig(registration_fee=FEE), clock=clock)


@pytest.fixture()
def agent_address() -> str:
    return Account.from_key(AGENT_KEY).address


@pytest.fixture()
def other_address() -> str:
    return Account.from_key(OTHER_KEY).address


def _register(
    registry: AgentRegistry,
    address: str,
    endpoint: str,
    did: str | None = None,
    value: int = FEE,
):
    return registry.register_direct(
        did=did if did is not None else did_for_address(address),
        description="bot",
        service_endpoint=endpoint,
        caller=address,
        attached_value=value,
    )


def _delegated_request(
    registry: AgentRegistry,
    key: str = AGENT_KEY,
    nonce: int | None = None,
    expiry: int = NOW + 3600,
    endpoint: str = ENDPOINT_A,
    did: str | None = None,
) -> DelegatedRegistration:
    address = Account.from_key(key).address
    return DelegatedRegistration(
        agent_address=address,
        did=did if did is not None else did_for_address(address),
        description="relayed bot",
        service_endpoint=endpoint,
        nonce=registry.get_nonce(address) if nonce is None else nonce,
        expiry=expiry,
    )


def _sign(registry: AgentRegistry, request: DelegatedRegistration, key: str = AGENT_KEY) -> bytes:
    return TypedDataSigner(registry.config.domain).sign(request, key)


class ScriptedValidator(AddressValidator):
    """Validator double that returns a fixed verdict."""

    def __init__(self, verdict: bool) -> None:
        self.verdict = verdict
        self.calls: list[tuple[str, str]] = []

    def validate_did(self, did: str, expected_address: str) -> bool:
        self.calls.append((did, expected_address))
        return self.verdict

    def get_validation_details(self, did: str, expected_address: str) -> ValidationResult:
        stage = ValidationStage.OK if self.verdict else ValidationStage.ADDRESS_MISMATCH
        return ValidationResult(valid=self.verdict, stage=stage, message="scripted", did=did)

    def extract_address_from_did(self, did: str) -> tuple[str, bool]:
        return NULL_ADDRESS, False


class FixedRecoverer(SignatureRecoverer):
    """Recoverer double that always reports the same signer."""

    def __init__(self, address: str) -> None:
        self.address = address

    def recover_signer(self, digest: bytes, signature: bytes | str) -> str:
        return self.address


class UnencodableHasher(StructuredDataHasher):
    """Hasher double whose encoding always fails."""

    def hash_structured(self, request: DelegatedRegistration) -> bytes:
        raise TypedDataEncodingError("value out of range")


# ---------------------------------------------------------------------------
# Direct registration
# ---------------------------------------------------------------------------


class TestRegisterDirect:
    def test_concrete_scenario(self, registry: AgentRegistry) -> None:
        did = did_for_address(ADDRESS_A, method="method")
        record = registry.register_direct(
            did=did,
            description="bot",
            service_endpoint=ENDPOINT_A,
            caller=ADDRESS_A,
            attached_value=FEE,
        )
        assert record.agent_id == 1

        with pytest.raises(DIDAlreadyRegisteredError):
            registry.register_direct(
                did=did,
                description="bot",
                service_endpoint=ENDPOINT_B,
                caller=ADDRESS_B,
                attached_value=FEE,
            )
        assert len(registry) == 1
        assert not registry.is_registered(ADDRESS_B)

    def test_record_fields(self, registry: AgentRegistry) -> None:
        record = _register(registry, ADDRESS_A, ENDPOINT_A)
        assert record.owner_address == normalize_address(ADDRESS_A)
        assert record.did == did_for_address(ADDRESS_A)
        assert record.description == "bot"
        assert record.service_endpoint == ENDPOINT_A

    def test_ids_are_sequential(self, registry: AgentRegistry) -> None:
        ids = [
            _register(registry, address, f"https://{i}.example").agent_id
            for i, address in enumerate(
                [ADDRESS_A, ADDRESS_B, "0xcccccccccccccccccccccccccccccccccccccccc"]
            )
        ]
        assert ids == [1, 2, 3]

    def test_rejected_attempt_does_not_consume_an_id(self, registry: AgentRegistry) -> None:
        with pytest.raises(InsufficientFeeError):
            _register(registry, ADDRESS_A, ENDPOINT_A, value=FEE - 1)
        assert _register(registry, ADDRESS_A, ENDPOINT_A).agent_id == 1

    def test_fee_above_floor_is_accepted(self, registry: AgentRegistry) -> None:
        assert _register(registry, ADDRESS_A, ENDPOINT_A, value=FEE * 10).agent_id == 1

    def test_insufficient_fee(self, registry: AgentRegistry) -> None:
        with pytest.raises(InsufficientFeeError) as info:
            _register(registry, ADDRESS_A, ENDPOINT_A, value=FEE - 1)
        assert info.value.required == FEE
        assert len(registry) == 0

    def test_empty_did(self, registry: AgentRegistry) -> None:
        with pytest.raises(EmptyDIDError):
            _register(registry, ADDRESS_A, ENDPOINT_A, did="")

    def test_empty_endpoint(self, registry: AgentRegistry) -> None:
        with pytest.raises(EmptyServiceEndpointError):
            _register(registry, ADDRESS_A, "")

    def test_invalid_caller(self, registry: AgentRegistry) -> None:
        with pytest.raises(InvalidAgentAddressError):
            _register(registry, "0x1234", ENDPOINT_A, did=did_for_address(ADDRESS_A))

    def test_address_registers_once(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        with pytest.raises(AddressAlreadyRegisteredError):
            _register(registry, ADDRESS_A, ENDPOINT_B, did=did_for_address(ADDRESS_A) + "#2")
        assert len(registry) == 1

    def test_lowercase_and_checksummed_caller_are_the_same(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        with pytest.raises(AddressAlreadyRegisteredError):
            _register(registry, normalize_address(ADDRESS_A), ENDPOINT_B)

    def test_endpoint_is_unique(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        with pytest.raises(EndpointAlreadyRegisteredError):
            _register(registry, ADDRESS_B, ENDPOINT_A)
        assert not registry.is_registered(ADDRESS_B)

    def test_did_must_encode_caller(self, registry: AgentRegistry) -> None:
        with pytest.raises(DIDValidationError) as info:
            _register(registry, ADDRESS_A, ENDPOINT_A, did=did_for_address(ADDRESS_B))
        assert info.value.result is not None
        assert info.value.result.stage == ValidationStage.ADDRESS_MISMATCH
        assert len(registry) == 0

    def test_garbage_did_is_rejected(self, registry: AgentRegistry) -> None:
        with pytest.raises(DIDValidationError):
            _register(registry, ADDRESS_A, ENDPOINT_A, did="did:agent:0OIl")

    def test_uniqueness_is_checked_before_did_validation(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        with pytest.raises(EndpointAlreadyRegisteredError):
            _register(registry, ADDRESS_B, ENDPOINT_A, did="did:agent:0OIl")

    def test_all_errors_are_registry_errors(self, registry: AgentRegistry) -> None:
        with pytest.raises(RegistryError):
            _register(registry, ADDRESS_A, ENDPOINT_A, value=0)


# ---------------------------------------------------------------------------
# Delegated registration
# ---------------------------------------------------------------------------


class TestRegisterDelegated:
    def test_success_registers_agent_not_relayer(
        self, registry: AgentRegistry, agent_address: str
    ) -> None:
        request = _delegated_request(registry)
        record = registry.register_delegated(request, _sign(registry, request), RELAYER, FEE)
        assert record.owner_address == agent_address
        assert registry.is_registered(agent_address)
        assert not registry.is_registered(RELAYER)

    def test_success_increments_nonce_by_one(
        self, registry: AgentRegistry, agent_address: str
    ) -> None:
        assert registry.get_nonce(agent_address) == 0
        request = _delegated_request(registry)
        registry.register_delegated(request, _sign(registry, request), RELAYER, FEE)
        assert registry.get_nonce(agent_address) == 1

    def test_hex_signature(self, registry: AgentRegistry) -> None:
        request = _delegated_request(registry)
        signature = "0x" + _sign(registry, request).hex()
        assert registry.register_delegated(request, signature, RELAYER, FEE).agent_id == 1

    def test_replay_is_rejected(self, registry: AgentRegistry, agent_address: str) -> None:
        request = _delegated_request(registry)
        signature = _sign(registry, request)
        registry.register_delegated(request, signature, RELAYER, FEE)
        with pytest.raises(NonceMismatchError) as info:
            registry.register_delegated(request, signature, RELAYER, FEE)
        assert info.value.expected == 1
        assert info.value.received == 0
        assert registry.get_nonce(agent_address) == 1
        assert len(registry) == 1

    def test_future_nonce_is_rejected(self, registry: AgentRegistry, agent_address: str) -> None:
        request = _delegated_request(registry, nonce=1)
        with pytest.raises(NonceMismatchError):
            registry.register_delegated(request, _sign(registry, request), RELAYER, FEE)
        assert registry.get_nonce(agent_address) == 0

    def test_expired_request(self, registry: AgentRegistry, clock: FakeClock) -> None:
        request = _delegated_request(registry, expiry=NOW + 10)
        clock.now = NOW + 11
        with pytest.raises(RequestExpiredError):
            registry.register_delegated(request, _sign(registry, request), RELAYER, FEE)
        assert len(registry) == 0

    def test_expiry_equal_to_now_is_accepted(
        self, registry: AgentRegistry, clock: FakeClock
    ) -> None:
        request = _delegated_request(registry, expiry=NOW + 10)
        clock.now = NOW + 10
        assert registry.register_delegated(request, _sign(registry, request), RELAYER, FEE)

    def test_signature_by_other_key(self, registry: AgentRegistry, agent_address: str) -> None:
        request = _delegated_request(registry)
        with pytest.raises(SignatureMismatchError) as info:
            registry.register_delegated(
                request, _sign(registry, request, OTHER_KEY), RELAYER, FEE
            )
        assert info.value.recovered == Account.from_key(OTHER_KEY).address
        assert registry.get_nonce(agent_address) == 0
        assert len(registry) == 0

    def test_tampered_request(self, registry: AgentRegistry) -> None:
        request = _delegated_request(registry)
        signature = _sign(registry, request)
        tampered = dataclasses.replace(request, service_endpoint=ENDPOINT_B)
        with pytest.raises(SignatureMismatchError):
            registry.register_delegated(tampered, signature, RELAYER, FEE)

    def test_malformed_signature(self, registry: AgentRegistry) -> None:
        request = _delegated_request(registry)
        with pytest.raises(SignatureMismatchError) as info:
            registry.register_delegated(request, b"\x01" * 10, RELAYER, FEE)
        assert info.value.recovered is None

    def test_signature_for_other_domain(self, registry: AgentRegistry, clock: FakeClock) -> None:
        other = AgentRegistry(
            RegistryConfig(registration_fee=FEE, domain_version="2"), clock=clock
        )
        request = _delegated_request(registry)
        with pytest.raises(SignatureMismatchError):
            registry.register_delegated(request, _sign(other, request), RELAYER, FEE)

    def test_insufficient_fee(self, registry: AgentRegistry) -> None:
        request = _delegated_request(registry)
        with pytest.raises(InsufficientFeeError):
            registry.register_delegated(request, _sign(registry, request), RELAYER, FEE - 1)

    def test_empty_endpoint(self, registry: AgentRegistry) -> None:
        request = _delegated_request(registry, endpoint="")
        with pytest.raises(EmptyServiceEndpointError):
            registry.register_delegated(request, _sign(registry, request), RELAYER, FEE)

    def test_empty_did_fails_validation(self, registry: AgentRegistry) -> None:
        request = _delegated_request(registry, did="")
        with pytest.raises(DIDValidationError) as info:
            registry.register_delegated(request, _sign(registry, request), RELAYER, FEE)
        assert info.value.result.stage == ValidationStage.EMPTY_INPUT  # type: ignore[union-attr]

    def test_did_for_other_address(self, registry: AgentRegistry) -> None:
        request = _delegated_request(registry, did=did_for_address(ADDRESS_B))
        with pytest.raises(DIDValidationError):
            registry.register_delegated(request, _sign(registry, request), RELAYER, FEE)

    def test_already_registered_directly(
        self, registry: AgentRegistry, agent_address: str
    ) -> None:
        _register(registry, agent_address, ENDPOINT_B)
        request = _delegated_request(registry)
        with pytest.raises(AddressAlreadyRegisteredError):
            registry.register_delegated(request, _sign(registry, request), RELAYER, FEE)
        assert registry.get_nonce(agent_address) == 0

    def test_endpoint_conflict_with_direct_registration(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        request = _delegated_request(registry, endpoint=ENDPOINT_A)
        with pytest.raises(EndpointAlreadyRegisteredError):
            registry.register_delegated(request, _sign(registry, request), RELAYER, FEE)

    def test_injected_recoverer_is_used(self, clock: FakeClock, agent_address: str) -> None:
        registry = AgentRegistry(
            RegistryConfig(registration_fee=FEE),
            recoverer=FixedRecoverer(agent_address),
            clock=clock,
        )
        request = _delegated_request(registry)
        assert registry.register_delegated(request, b"", RELAYER, FEE).agent_id == 1

    @pytest.mark.parametrize(
        ("nonce", "expiry"),
        [(0, UINT256_MAX + 1), (UINT256_MAX + 1, NOW + 60), (-1, NOW + 60), (0, -1)],
    )
    def test_fields_must_fit_uint256(self, agent_address: str, nonce: int, expiry: int) -> None:
        with pytest.raises(ValueError, match="uint256"):
            DelegatedRegistration(
                agent_address=agent_address,
                did=did_for_address(agent_address),
                description="",
                service_endpoint=ENDPOINT_A,
                nonce=nonce,
                expiry=expiry,
            )

    def test_uint256_max_expiry_is_accepted(self, registry: AgentRegistry) -> None:
        request = _delegated_request(registry, expiry=UINT256_MAX)
        record = registry.register_delegated(request, _sign(registry, request), RELAYER, FEE)
        assert record.agent_id == 1

    def test_unencodable_request_is_an_authentication_failure(
        self, clock: FakeClock, agent_address: str
    ) -> None:
        registry = AgentRegistry(
            RegistryConfig(registration_fee=FEE),
            hasher=UnencodableHasher(),
            recoverer=FixedRecoverer(agent_address),
            clock=clock,
        )
        request = _delegated_request(registry)
        with pytest.raises(SignatureMismatchError):
            registry.register_delegated(request, b"", RELAYER, FEE)
        assert not registry.is_registered(agent_address)
        assert registry.get_nonce(agent_address) == 0
        assert registry.events == []


# ---------------------------------------------------------------------------
# Validator injection
# ---------------------------------------------------------------------------


class TestValidatorInjection:
    def test_rejecting_validator_blocks_registration(self, clock: FakeClock) -> None:
        validator = ScriptedValidator(verdict=False)
        registry = AgentRegistry(
            RegistryConfig(registration_fee=FEE), validator=validator, clock=clock
        )
        with pytest.raises(DIDValidationError) as info:
            _register(registry, ADDRESS_A, ENDPOINT_A)
        assert info.value.result.message == "scripted"  # type: ignore[union-attr]
        assert validator.calls == [(did_for_address(ADDRESS_A), normalize_address(ADDRESS_A))]

    def test_accepting_validator_admits_any_did(self, clock: FakeClock) -> None:
        registry = AgentRegistry(
            RegistryConfig(registration_fee=FEE),
            validator=ScriptedValidator(verdict=True),
            clock=clock,
        )
        record = _register(registry, ADDRESS_A, ENDPOINT_A, did="did:web:example.com")
        assert record.did == "did:web:example.com"


# ---------------------------------------------------------------------------
# Endpoint update
# ---------------------------------------------------------------------------


class TestUpdateServiceEndpoint:
    def test_moves_endpoint(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        registry.update_service_endpoint(ADDRESS_A, "https://new.example")
        assert registry.get_agent_service_endpoint(ADDRESS_A) == "https://new.example"
        assert registry.get_agent_by_service_endpoint("https://new.example").agent_id == 1
        with pytest.raises(AgentNotFoundError):
            registry.get_agent_by_service_endpoint(ENDPOINT_A)

    def test_freed_endpoint_can_be_claimed(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        registry.update_service_endpoint(ADDRESS_A, "https://new.example")
        assert _register(registry, ADDRESS_B, ENDPOINT_A).agent_id == 2

    def test_leaves_did_and_owner(self, registry: AgentRegistry) -> None:
        before = _register(registry, ADDRESS_A, ENDPOINT_A)
        after = registry.update_service_endpoint(ADDRESS_A, "https://new.example")
        assert after.did == before.did
        assert after.owner_address == before.owner_address
        assert after.agent_id == before.agent_id

    def test_unregistered_caller(self, registry: AgentRegistry) -> None:
        with pytest.raises(AgentNotFoundError):
            registry.update_service_endpoint(ADDRESS_A, ENDPOINT_A)

    def test_endpoint_held_by_other_agent(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        _register(registry, ADDRESS_B, ENDPOINT_B)
        with pytest.raises(EndpointAlreadyRegisteredError):
            registry.update_service_endpoint(ADDRESS_A, ENDPOINT_B)
        assert registry.get_agent_service_endpoint(ADDRESS_A) == ENDPOINT_A

    def test_own_endpoint_is_accepted(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        registry.update_service_endpoint(ADDRESS_A, ENDPOINT_A)
        assert registry.get_agent_by_service_endpoint(ENDPOINT_A).owner_address == (
            normalize_address(ADDRESS_A)
        )
        registry.check_invariants()

    def test_empty_endpoint(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        with pytest.raises(EmptyServiceEndpointError):
            registry.update_service_endpoint(ADDRESS_A, "")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class TestLookups:
    def test_lookups_agree(self, registry: AgentRegistry) -> None:
        record = _register(registry, ADDRESS_A, ENDPOINT_A)
        assert registry.get_agent_by_id(1) == record
        assert registry.get_agent_by_address(ADDRESS_A) == record
        assert registry.get_agent_by_service_endpoint(ENDPOINT_A) == record
        assert registry.get_agent_did(ADDRESS_A) == record.did

    @pytest.mark.parametrize("agent_id", [0, 1, 99])
    def test_unknown_id(self, registry: AgentRegistry, agent_id: int) -> None:
        with pytest.raises(AgentNotFoundError):
            registry.get_agent_by_id(agent_id)

    def test_unknown_address(self, registry: AgentRegistry) -> None:
        with pytest.raises(AgentNotFoundError):
            registry.get_agent_by_address(ADDRESS_A)

    def test_malformed_address_is_not_found(self, registry: AgentRegistry) -> None:
        with pytest.raises(AgentNotFoundError):
            registry.get_agent_by_address("not-an-address")
        assert registry.get_nonce("not-an-address") == 0
        assert "not-an-address" not in registry

    def test_not_found_is_key_error(self, registry: AgentRegistry) -> None:
        with pytest.raises(KeyError):
            registry.get_agent_did(ADDRESS_A)

    def test_returned_records_are_copies(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        record = registry.get_agent_by_address(ADDRESS_A)
        record.service_endpoint = "https://mutated.example"
        assert registry.get_agent_service_endpoint(ADDRESS_A) == ENDPOINT_A

    def test_list_agents_is_ordered_by_id(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_B, ENDPOINT_B)
        _register(registry, ADDRESS_A, ENDPOINT_A)
        assert [r.agent_id for r in registry.list_agents()] == [1, 2]
        assert registry.agent_count() == 2
        assert ADDRESS_A in registry


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class TestEvents:
    def test_registration_emits_event(self, registry: AgentRegistry) -> None:
        record = _register(registry, ADDRESS_A, ENDPOINT_A)
        assert registry.events == [
            AgentRegistered(address=record.owner_address, did=record.did, agent_id=1)
        ]

    def test_update_emits_event(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        registry.update_service_endpoint(ADDRESS_A, "https://new.example")
        assert registry.events[-1] == ServiceEndpointUpdated(
            agent_id=1, new_endpoint="https://new.example"
        )

    def test_failures_emit_nothing(self, registry: AgentRegistry) -> None:
        with pytest.raises(RegistryError):
            _register(registry, ADDRESS_A, ENDPOINT_A, value=0)
        with pytest.raises(RegistryError):
            registry.update_service_endpoint(ADDRESS_A, ENDPOINT_B)
        assert registry.events == []

    def test_subscribers_are_notified(self, registry: AgentRegistry) -> None:
        received: list[object] = []
        registry.subscribe(received.append)
        _register(registry, ADDRESS_A, ENDPOINT_A)
        assert len(received) == 1
        assert isinstance(received[0], AgentRegistered)

    def test_failing_subscriber_does_not_undo_commit(
        self, registry: AgentRegistry, caplog: pytest.LogCaptureFixture
    ) -> None:
        def broken(event: object) -> None:
            raise RuntimeError("listener down")

        registry.subscribe(broken)
        with caplog.at_level(logging.ERROR, logger="agent_registry.registry.agent_registry"):
            _register(registry, ADDRESS_A, ENDPOINT_A)
        assert registry.is_registered(ADDRESS_A)
        assert any("listener" in message.lower() for message in caplog.messages)

    def test_failing_event_log_does_not_undo_commit(
        self, clock: FakeClock, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        log_path = tmp_path / "events.jsonl"
        log = EventLog(log_path)
        log_path.mkdir()
        registry = AgentRegistry(RegistryConfig(registration_fee=FEE), clock=clock, event_log=log)
        received: list[object] = []
        registry.subscribe(received.append)

        with caplog.at_level(logging.ERROR, logger="agent_registry.registry.agent_registry"):
            record = _register(registry, ADDRESS_A, ENDPOINT_A)

        assert record.agent_id == 1
        assert registry.is_registered(ADDRESS_A)
        assert len(registry.events) == 1
        assert len(received) == 1
        assert any("event log" in message.lower() for message in caplog.messages)

    def test_event_log_receives_events(self, clock: FakeClock) -> None:
        log = EventLog()
        registry = AgentRegistry(RegistryConfig(registration_fee=FEE), clock=clock, event_log=log)
        _register(registry, ADDRESS_A, ENDPOINT_A)
        registry.update_service_endpoint(ADDRESS_A, ENDPOINT_B)
        lines = [json.loads(line) for line in log.drain_buffer()]
        assert [line["event_type"] for line in lines] == [
            "agent_registered",
            "service_endpoint_updated",
        ]
        assert lines[0]["agent_id"] == 1


# ---------------------------------------------------------------------------
# Consistency under interleaving and concurrency
# ---------------------------------------------------------------------------


class TestConsistency:
    def test_mixed_attempts_keep_indexes_consistent(
        self, registry: AgentRegistry, agent_address: str, other_address: str
    ) -> None:
        attempts = [
            lambda: _register(registry, ADDRESS_A, ENDPOINT_A),
            lambda: _register(registry, ADDRESS_B, ENDPOINT_A),
            lambda: _register(registry, ADDRESS_B, ENDPOINT_B, did=did_for_address(ADDRESS_A)),
            lambda: _register(registry, ADDRESS_B, ENDPOINT_B),
            lambda: registry.register_delegated(
                _delegated_request(registry, endpoint=ENDPOINT_B),
                _sign(registry, _delegated_request(registry, endpoint=ENDPOINT_B)),
                RELAYER,
                FEE,
            ),
            lambda: registry.register_delegated(
                _delegated_request(registry, endpoint="https://agent.example"),
                _sign(registry, _delegated_request(registry, endpoint="https://agent.example")),
                RELAYER,
                FEE,
            ),
            lambda: registry.register_delegated(
                _delegated_request(registry, key=OTHER_KEY, endpoint="https://other.example"),
                _sign(
                    registry,
                    _delegated_request(registry, key=OTHER_KEY, endpoint="https://other.example"),
                ),
                RELAYER,
                FEE,
            ),
            lambda: registry.update_service_endpoint(ADDRESS_A, "https://agent.example"),
            lambda: registry.update_service_endpoint(ADDRESS_A, "https://a2.example"),
            lambda: _register(registry, ADDRESS_A, ENDPOINT_B),
        ]
        outcomes = []
        for attempt in attempts:
            try:
                attempt()
                outcomes.append(True)
            except RegistryError:
                outcomes.append(False)
            registry.check_invariants()

        assert outcomes == [True, False, False, True, False, True, True, False, True, False]
        assert len(registry) == 4
        assert registry.get_nonce(agent_address) == 1
        assert registry.get_nonce(other_address) == 1
        assert [r.agent_id for r in registry.list_agents()] == [1, 2, 3, 4]

    def test_concurrent_duplicates_admit_one(self, registry: AgentRegistry) -> None:
        barrier = threading.Barrier(8)
        successes: list[int] = []
        failures: list[Exception] = []

        def attempt() -> None:
            barrier.wait()
            try:
                successes.append(_register(registry, ADDRESS_A, ENDPOINT_A).agent_id)
            except RegistryError as exc:
                failures.append(exc)

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert successes == [1]
        assert len(failures) == 7
        assert all(isinstance(exc, AddressAlreadyRegisteredError) for exc in failures)
        registry.check_invariants()

    def test_concurrent_endpoint_claims_admit_one(self, registry: AgentRegistry) -> None:
        addresses = [f"0x{i:040x}" for i in range(1, 9)]
        barrier = threading.Barrier(len(addresses))
        successes: list[str] = []

        def attempt(address: str) -> None:
            barrier.wait()
            try:
                _register(registry, address, ENDPOINT_A)
                successes.append(address)
            except EndpointAlreadyRegisteredError:
                pass

        threads = [threading.Thread(target=attempt, args=(a,)) for a in addresses]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(successes) == 1
        assert registry.get_agent_by_service_endpoint(ENDPOINT_A).owner_address == (
            normalize_address(successes[0])
        )


# ---------------------------------------------------------------------------
# Snapshot / restore
# ---------------------------------------------------------------------------


class TestSnapshot:
    def test_round_trip(self, registry: AgentRegistry, clock: FakeClock) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        request = _delegated_request(registry, endpoint=ENDPOINT_B)
        registry.register_delegated(request, _sign(registry, request), RELAYER, FEE)

        snapshot = json.loads(json.dumps(registry.snapshot()))
        restored = AgentRegistry.restore(snapshot, config=registry.config, clock=clock)

        assert restored.list_agents() == registry.list_agents()
        assert restored.get_nonce(request.agent_address) == 1
        assert _register(restored, ADDRESS_B, "https://b2.example").agent_id == 3

    def test_restored_registry_rejects_replay(
        self, registry: AgentRegistry, clock: FakeClock
    ) -> None:
        request = _delegated_request(registry)
        signature = _sign(registry, request)
        registry.register_delegated(request, signature, RELAYER, FEE)
        restored = AgentRegistry.restore(registry.snapshot(), config=registry.config, clock=clock)
        with pytest.raises(NonceMismatchError):
            restored.register_delegated(request, signature, RELAYER, FEE)

    def test_inconsistent_snapshot(self, registry: AgentRegistry) -> None:
        _register(registry, ADDRESS_A, ENDPOINT_A)
        _register(registry, ADDRESS_B, ENDPOINT_B)
        snapshot = registry.snapshot()
        snapshot["records"][1]["service_endpoint"] = ENDPOINT_A  # type: ignore[index]
        with pytest.raises(RegistryStateError):
            AgentRegistry.restore(snapshot)

    def test_non_object_snapshot(self) -> None:
        with pytest.raises(RegistryStateError):
            AgentRegistry.restore([])  # type: ignore[arg-type]
