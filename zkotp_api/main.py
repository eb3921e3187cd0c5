from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from zkotp.errors import (
    AlreadyExists,
    DecryptionError,
    NotFound,
    ProofGenerationError,
    ProverTimeout,
    StoreUnavailable,
    ValidationError,
)
from zkotp.hashing import action_hash
from zkotp.keys import get_master_key_provider
from zkotp.prover import HttpProvingOracle, ProofAssembler, SnarkjsProvingOracle
from zkotp.service import OTPAuthService, ProverPool
from zkotp.store import InMemoryAccountStore, SqliteAccountStore
from zkotp.vault import SecretVault
from zkotp.verifier import PairingVerifyingOracle, SnarkjsVerifyingOracle

from . import config
from .logging_config import audit_log, configure_logging, set_request_id
from .models import AuthorizeRequest, AuthorizeResponse, CheckResponse, HealthResponse, RegisterRequest, StatusResponse
from .rate_limit import RateLimiter
from .security import (
    extract_client_id,
    validate_address,
    validate_hex_data,
    validate_otp,
    validate_secret,
    validate_uid,
    validate_value,
)

app = FastAPI(title="ZK-OTP Authorization Service")

INVALID_CODE_MESSAGE = "Invalid OTP or proof generation failed."


def get_store():
    if config.STORE_TYPE == "memory":
        return InMemoryAccountStore()
    return SqliteAccountStore(config.DB_PATH)


def get_key_provider():
    return get_master_key_provider(
        source=config.MASTER_KEY_SOURCE,
        key_path=config.MASTER_KEY_PATH,
        aws_secret_id=config.AWS_SECRET_ID,
        aws_region=config.AWS_REGION or None
    )


def get_proving_oracle():
    if config.PROVER_TYPE == "http":
        if not config.PROVER_URL:
            raise ValueError("ZKOTP_PROVER_URL required for http prover")
        return HttpProvingOracle(config.PROVER_URL, timeout=config.PROVER_TIMEOUT)
    return SnarkjsProvingOracle(
        config.CIRCUIT_WASM,
        config.CIRCUIT_ZKEY,
        snarkjs_bin=config.SNARKJS_BIN,
        timeout=config.PROVER_TIMEOUT
    )


def get_verifying_oracle():
    if config.SELF_VERIFIER == "pairing":
        return PairingVerifyingOracle.from_file(config.VERIFICATION_KEY)
    if config.SELF_VERIFIER == "snarkjs":
        return SnarkjsVerifyingOracle(config.VERIFICATION_KEY, snarkjs_bin=config.SNARKJS_BIN)
    raise ValueError(f"Unknown ZKOTP_SELF_VERIFIER: {config.SELF_VERIFIER}")


def build_service() -> OTPAuthService:
    """Wire a service from environment configuration."""
    store = get_store()
    store.init()
    vault = SecretVault(store, get_key_provider(), iterations=config.PBKDF2_ITERATIONS)
    assembler = ProofAssembler(get_proving_oracle(), get_verifying_oracle())
    pool = ProverPool(max_workers=config.PROVER_WORKERS, timeout=config.PROVER_TIMEOUT)
    return OTPAuthService(vault, assembler, pool=pool)


SERVICE = None
auth_limiter = RateLimiter(config.AUTHORIZE_RPM)
register_limiter = RateLimiter(config.REGISTER_RPM)


def configure(service: OTPAuthService) -> None:
    """Install the service used by the endpoints."""
    global SERVICE
    SERVICE = service


@app.on_event("startup")
def _startup():
    configure_logging("DEBUG" if config.is_debug() else config.LOG_LEVEL, json_format=config.LOG_JSON)
    if config.is_production():
        missing = [name for name, present in config.validate_config().items() if not present]
        if missing:
            raise RuntimeError(f"Missing artifacts in production: {', '.join(missing)}")
    if SERVICE is None:
        configure(build_service())


@app.on_event("shutdown")
def _shutdown():
    if SERVICE is not None:
        if SERVICE.pool is not None:
            SERVICE.pool.shutdown()
        SERVICE.vault.store.close()


@app.middleware("http")
async def _request_id(request: Request, call_next):
    request_id = set_request_id(request.headers.get("x-request-id"))
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


def _error(status_code: int, message: str) -> JSONResponse:
    body = StatusResponse(status="error", message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _throttled(limiter: RateLimiter, key: str, endpoint: str) -> Optional[JSONResponse]:
    result = limiter.check(key)
    if result.allowed:
        return None
    audit_log.rate_limit_exceeded(key, endpoint)
    response = _error(429, "RATE_LIMIT")
    response.headers["Retry-After"] = result.retry_after_header
    return response


def _client_id(request: Request) -> str:
    peer = request.client.host if request.client else None
    return extract_client_id(dict(request.headers), peer)


@app.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(
        status="ok",
        env=config.ENV,
        store=config.STORE_TYPE,
        prover=config.PROVER_TYPE,
        artifacts=config.validate_config()
    )


@app.post("/register", response_model=StatusResponse)
def register(req: RegisterRequest, request: Request):
    throttled = _throttled(register_limiter, _client_id(request), "/register")
    if throttled is not None:
        return throttled

    try:
        uid = validate_uid(req.uid)
        secret = validate_secret(req.secret)
        SERVICE.register(uid, secret)
    except ValidationError as e:
        return _error(400, str(e))
    except AlreadyExists:
        audit_log.registration(req.uid, "ALREADY_EXISTS")
        return _error(409, "User already exists.")
    except StoreUnavailable:
        return _error(503, "Account store unavailable.")

    audit_log.registration(uid, "CREATED")
    return StatusResponse(status="ok", message="User registered successfully.")


@app.get("/check", response_model=CheckResponse)
def check(uid: str = Query(...)):
    try:
        registered = SERVICE.check_registered(validate_uid(uid))
    except ValidationError as e:
        return _error(400, str(e))
    except StoreUnavailable:
        return _error(503, "Account store unavailable.")

    if not registered:
        return JSONResponse(status_code=404, content={"registered": False})
    return CheckResponse(registered=True)


@app.post("/authorize", response_model=AuthorizeResponse)
def authorize(req: AuthorizeRequest, request: Request):
    client_id = _client_id(request)
    for key in (f"client:{client_id}", f"uid:{req.uid}"):
        throttled = _throttled(auth_limiter, key, "/authorize")
        if throttled is not None:
            return throttled

    try:
        uid = validate_uid(req.uid)
        otp = validate_otp(req.otp)
        to = validate_address(req.to)
        value = validate_value(req.value)
        data = validate_hex_data(req.data)
    except ValidationError as e:
        return _error(400, str(e))

    bound = action_hash(to, value, data)
    audit_log.authorization_request(uid, bound, to, str(value))

    try:
        calldata = SERVICE.authorize(uid, otp, to, value, data)
    except NotFound:
        audit_log.authorization_decision(uid, "DENIED", reason="UNKNOWN_ACCOUNT")
        return _error(404, "User not found.")
    except (ProofGenerationError, ValidationError) as e:
        audit_log.authorization_decision(uid, "DENIED", reason=type(e).__name__)
        return _error(400, INVALID_CODE_MESSAGE)
    except ProverTimeout:
        audit_log.authorization_decision(uid, "DENIED", reason="PROVER_TIMEOUT")
        return _error(504, "Proof generation timed out.")
    except DecryptionError:
        audit_log.security_event("SECRET_DECRYPTION_FAILED", severity="critical", uid=uid)
        return _error(500, "Internal error.")
    except StoreUnavailable:
        return _error(503, "Account store unavailable.")

    audit_log.authorization_decision(uid, "PROOF_ISSUED", tx_nonce=calldata.public_input[4])
    return {"status": "ok", "proof": calldata.to_dict()}
