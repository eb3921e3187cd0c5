import logging

import pytest
from fastapi.testclient import TestClient

from zkotp.errors import ProverTimeout
from zkotp.otp import compute_code, decode_secret, format_code, time_step
from zkotp_api import main
from zkotp_api.logging_config import audit_log, set_request_id
from zkotp_api.rate_limit import RateLimiter

from fakes import API_NOW

client = TestClient(main.app)

SECRET = "JBSWY3DPEHPK3PXP"
TARGET = "0x" + "aa" * 20


def current_code():
    return format_code(compute_code(decode_secret(SECRET), time_step(API_NOW)))


def authorize(uid="alice", otp=None, to=TARGET, value=10, data="0x"):
    body = {"uid": uid, "otp": otp or current_code(), "to": to, "value": value, "data": data}
    return client.post("/authorize", json=body)


# Register then check
def test_register_then_check(service):
    r = client.post("/register", json={"uid": "alice", "secret": "S3CR3T"})
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "message": "User registered successfully."}

    r = client.get("/check", params={"uid": "alice"})
    assert r.status_code == 200
    assert r.json() == {"registered": True}


def test_check_unknown(service):
    r = client.get("/check", params={"uid": "nobody"})
    assert r.status_code == 404
    assert r.json() == {"registered": False}


def test_duplicate_registration(service):
    client.post("/register", json={"uid": "alice", "secret": SECRET})
    r = client.post("/register", json={"uid": "alice", "secret": SECRET})
    assert r.status_code == 409
    assert r.json() == {"status": "error", "message": "User already exists."}


def test_register_validation(service):
    r = client.post("/register", json={"uid": "alice", "secret": ""})
    assert r.status_code == 400
    r = client.post("/register", json={"uid": "bad uid!", "secret": SECRET})
    assert r.status_code == 400
    r = client.post("/register", json={"uid": "alice", "secret": "not-base32!"})
    assert r.status_code == 400


def test_authorize_ok(service):
    client.post("/register", json={"uid": "alice", "secret": SECRET})
    r = authorize()
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    proof = body["proof"]
    assert len(proof["a"]) == 2
    assert len(proof["b"]) == 2 and all(len(pair) == 2 for pair in proof["b"])
    assert len(proof["c"]) == 2
    assert len(proof["publicInput"]) == 5
    assert all(v.startswith("0x") and len(v) == 66 for v in proof["publicInput"])


def test_authorize_wrong_code(service):
    client.post("/register", json={"uid": "alice", "secret": SECRET})
    wrong = format_code((int(current_code()) + 1) % 1000000)
    r = authorize(otp=wrong)
    assert r.status_code == 400
    assert r.json() == {"status": "error", "message": "Invalid OTP or proof generation failed."}


def test_authorize_unknown_account(service):
    r = authorize(uid="nobody")
    assert r.status_code == 404


def test_authorize_validation(service):
    client.post("/register", json={"uid": "alice", "secret": SECRET})
    assert authorize(otp="12345").status_code == 400
    assert authorize(to="0x1234").status_code == 400
    assert authorize(data="0xabc").status_code == 400
    assert authorize(value=-1).status_code == 400


def test_authorize_timeout(service, monkeypatch):
    client.post("/register", json={"uid": "alice", "secret": SECRET})

    def slow(*args, **kwargs):
        raise ProverTimeout("Proof generation exceeded 60s")

    monkeypatch.setattr(service, "authorize", slow)
    r = authorize()
    assert r.status_code == 504


def test_authorize_rate_limited_per_account(service):
    client.post("/register", json={"uid": "alice", "secret": SECRET})
    main.auth_limiter = RateLimiter(2)
    responses = [authorize(otp="000000") for _ in range(3)]
    assert responses[-1].status_code == 429
    assert responses[-1].headers["retry-after"] == "60"


def test_request_id_echoed(service):
    r = client.get("/check", params={"uid": "nobody"}, headers={"x-request-id": "req-123"})
    assert r.headers["x-request-id"] == "req-123"


def test_health(service):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_short_secret_registers_and_authorizes(service):
    client.post("/register", json={"uid": "carol", "secret": "S3CR3T"})
    otp = format_code(compute_code(decode_secret("S3CR3T"), time_step(API_NOW)))
    r = authorize(uid="carol", otp=otp)
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_startup_uses_debug_level(service, monkeypatch):
    levels = []
    monkeypatch.setattr(main, "configure_logging", lambda level, json_format: levels.append(level))
    monkeypatch.setattr(main.config, "ENV", "dev")
    monkeypatch.setenv("ZKOTP_DEBUG", "true")
    main._startup()
    assert levels == ["DEBUG"]


def test_startup_refuses_missing_artifacts_in_production(service, monkeypatch):
    monkeypatch.setattr(main, "configure_logging", lambda level, json_format: None)
    monkeypatch.setattr(main.config, "ENV", "prod")
    monkeypatch.setattr(main.config, "PROVER_TYPE", "snarkjs")
    monkeypatch.setattr(main.config, "CIRCUIT_WASM", "/missing/circuit.wasm")
    with pytest.raises(RuntimeError, match="circuit_wasm"):
        main._startup()


def test_audit_log_redacts_codes_and_tags_request(caplog):
    set_request_id("req-audit")
    with caplog.at_level(logging.INFO, logger="zkotp.audit"):
        audit_log.security_event("OTP_REPLAY", severity="low", uid="alice", otp="123456")
    fields = caplog.records[-1].extra_fields
    assert fields["otp"] == "[REDACTED]"
    assert fields["uid"] == "alice"
    assert fields["request_id"] == "req-audit"
