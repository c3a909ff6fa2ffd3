"""Tests for the admission pipeline stages outside of HTTP."""

import asyncio

import pytest
from starlette.requests import Request

from tests.conftest import encrypt_body, proof_fields
from twist_api.core import envelope as codec
from twist_api.core.errors import (
    AuthenticationError,
    EligibilityError,
    EnvelopeError,
    RateLimitedError,
    ReplayError,
    ValidationError,
)
from twist_api.schemas.spin import SpinRequest
from twist_api.services.abuse import AbuseGuard
from twist_api.services.admission import (
    AdmissionContext,
    OriginGate,
    PayloadDispatcher,
    ProofService,
    client_identity,
)


def _request(headers: dict[str, str] | None = None, client=("10.0.0.1", 1234)) -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "headers": raw_headers, "client": client})


@pytest.fixture()
def guard() -> AbuseGuard:
    return AbuseGuard(rate_limit=10, violation_threshold=2)


def test_client_identity_prefers_forwarded_for() -> None:
    assert client_identity(_request({"X-Forwarded-For": "1.1.1.1, 10.0.0.2"})) == "1.1.1.1"
    assert client_identity(_request()) == "10.0.0.1"
    assert client_identity(_request(client=None)) == "unknown"


def test_origin_gate_exact_match() -> None:
    gate = OriginGate("https://app.example")
    assert gate.allows("https://app.example")
    assert not gate.allows("https://app.example/")
    assert not gate.allows("https://evil.example")
    assert not gate.allows(None)
    with pytest.raises(AuthenticationError):
        gate.enforce("http://app.example")


def test_proof_service_rejects_bad_proof() -> None:
    proofs = ProofService()
    fields = proof_fields()
    proofs.enforce(fields["randomKey"], fields["fusedKey"])
    with pytest.raises(AuthenticationError):
        proofs.enforce(fields["randomKey"], "0x" + "0" * 64)
    with pytest.raises(AuthenticationError):
        proofs.enforce(None, None)


@pytest.mark.asyncio
async def test_dispatcher_accepts_plain_and_encrypted(guard: AbuseGuard) -> None:
    dispatcher = PayloadDispatcher(guard)
    plain = await dispatcher.decode({"fid": 5, "mode": "check"}, SpinRequest)
    wrapped = await dispatcher.decode(encrypt_body({"fid": 5, "mode": "check"}), SpinRequest)
    assert plain == wrapped


@pytest.mark.asyncio
async def test_dispatcher_rejects_nonce_reuse(guard: AbuseGuard) -> None:
    dispatcher = PayloadDispatcher(guard)
    body = encrypt_body({"fid": 5})
    await dispatcher.unwrap(body)
    with pytest.raises(ReplayError):
        await dispatcher.unwrap(body)


@pytest.mark.asyncio
async def test_dispatcher_limits_fingerprint(guard: AbuseGuard, test_settings) -> None:
    dispatcher = PayloadDispatcher(guard)
    for _ in range(test_settings.fingerprint_max_requests):
        await dispatcher.unwrap(encrypt_body({"fid": 5, "_browserFingerprint": "fp-x"}))
    with pytest.raises(RateLimitedError):
        await dispatcher.unwrap(encrypt_body({"fid": 5, "_browserFingerprint": "fp-x"}))


@pytest.mark.asyncio
async def test_dispatcher_malformed_inputs(guard: AbuseGuard) -> None:
    dispatcher = PayloadDispatcher(guard)
    with pytest.raises(EnvelopeError):
        await dispatcher.unwrap({"encryptedPayload": {"tag": "x"}})
    with pytest.raises(ValidationError):
        await dispatcher.unwrap([1, 2])
    with pytest.raises(ValidationError):
        await dispatcher.decode({"fid": "not-a-number"}, SpinRequest)

    body = encrypt_body({"fid": 5})
    body["encryptedPayload"]["tag"] = "f" * 64
    with pytest.raises(EnvelopeError):
        await dispatcher.unwrap(body)


@pytest.mark.asyncio
async def test_dispatcher_derives_keys_off_the_event_loop(guard: AbuseGuard, mocker) -> None:
    to_thread = mocker.spy(asyncio, "to_thread")
    dispatcher = PayloadDispatcher(guard)

    assert await dispatcher.unwrap(encrypt_body({"fid": 5})) == {"fid": 5}
    to_thread.assert_called_once()
    assert to_thread.call_args.args[0] is codec.decode_payload

    await dispatcher.unwrap({"fid": 6})
    to_thread.assert_called_once()


def test_guard_counts_only_caller_faults(guard: AbuseGuard) -> None:
    context = AdmissionContext("3.3.3.3", guard)

    with pytest.raises(EligibilityError):
        with context.guard():
            raise EligibilityError("No spins left")
    assert not guard.is_blocked("3.3.3.3")

    for _ in range(2):
        with pytest.raises(AuthenticationError):
            with context.guard():
                context.check_origin("https://evil.example")
    assert guard.is_blocked("3.3.3.3")


def test_fresh_proof_single_use(guard: AbuseGuard) -> None:
    context = AdmissionContext("4.4.4.4", guard)
    fields = proof_fields()
    context.check_fresh_proof("spins-proof", fields["randomKey"], fields["fusedKey"])
    with pytest.raises(ReplayError):
        context.check_fresh_proof("spins-proof", fields["randomKey"], fields["fusedKey"])
