"""
Configuration module for the ZK-OTP service.

Centralizes all configuration with environment variable support and
validation of the proving artifacts.
"""

import os
from pathlib import Path
from typing import Dict

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("ZKOTP_ENV", "dev")  # dev|stage|prod

# Rate limits (requests per minute)
AUTHORIZE_RPM = int(os.getenv("AUTHORIZE_RPM", "30"))
REGISTER_RPM = int(os.getenv("REGISTER_RPM", "60"))

# Account store
STORE_TYPE = os.getenv("ZKOTP_STORE", "sqlite")  # sqlite|memory
DB_PATH = os.getenv("ZKOTP_DB_PATH", "data/zkotp.db")

# Master key
MASTER_KEY_SOURCE = os.getenv("ZKOTP_MASTER_KEY_SOURCE", "env")  # env|file|aws_secrets_manager
MASTER_KEY_PATH = os.getenv("ZKOTP_MASTER_KEY_PATH", "secrets/master_password")
AWS_SECRET_ID = os.getenv("ZKOTP_AWS_SECRET_ID", "")
AWS_REGION = os.getenv("AWS_REGION", "")
PBKDF2_ITERATIONS = int(os.getenv("ZKOTP_PBKDF2_ITERATIONS", "100000"))

# Proving
PROVER_TYPE = os.getenv("ZKOTP_PROVER", "snarkjs")  # snarkjs|http
PROVER_URL = os.getenv("ZKOTP_PROVER_URL", "")
SNARKJS_BIN = os.getenv("ZKOTP_SNARKJS_BIN", "snarkjs")
CIRCUIT_WASM = os.getenv("ZKOTP_CIRCUIT_WASM", "circuits/otp_verification.wasm")
CIRCUIT_ZKEY = os.getenv("ZKOTP_CIRCUIT_ZKEY", "circuits/otp_verification_final.zkey")
VERIFICATION_KEY = os.getenv("ZKOTP_VERIFICATION_KEY", "circuits/verification_key.json")
SELF_VERIFIER = os.getenv("ZKOTP_SELF_VERIFIER", "snarkjs")  # snarkjs|pairing
PROVER_WORKERS = int(os.getenv("ZKOTP_PROVER_WORKERS", "2"))
PROVER_TIMEOUT = float(os.getenv("ZKOTP_PROVER_TIMEOUT", "60"))

# Logging
LOG_LEVEL = os.getenv("ZKOTP_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("ZKOTP_LOG_JSON", "true").lower() in ("1", "true", "yes")


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Validate that all required artifact files exist.
    Returns dict of name -> exists.
    """
    paths = {}

    if PROVER_TYPE == "snarkjs":
        paths["circuit_wasm"] = CIRCUIT_WASM
        paths["circuit_zkey"] = CIRCUIT_ZKEY

    if SELF_VERIFIER in ("snarkjs", "pairing"):
        paths["verification_key"] = VERIFICATION_KEY

    if MASTER_KEY_SOURCE == "file":
        paths["master_key"] = MASTER_KEY_PATH

    return {name: Path(path).exists() for name, path in paths.items()}


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("ZKOTP_DEBUG", "").lower() in ("1", "true", "yes")
