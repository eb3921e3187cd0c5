import os
import sys

import pytest

# Tests import the fakes module from this directory.
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

os.environ.setdefault("ZKOTP_STORE", "memory")
os.environ.setdefault("ZKOTP_LOG_JSON", "false")

from zkotp.keys import StaticMasterKeyProvider
from zkotp.prover import ProofAssembler
from zkotp.service import OTPAuthService
from zkotp.store import InMemoryAccountStore
from zkotp.vault import SecretVault
from zkotp_api import main
from zkotp_api.rate_limit import RateLimiter

from fakes import API_NOW, FakeProvingOracle, FakeVerifyingOracle


def make_test_service() -> OTPAuthService:
    vault = SecretVault(InMemoryAccountStore(), StaticMasterKeyProvider(b"test-master"), iterations=1000)
    assembler = ProofAssembler(FakeProvingOracle(), FakeVerifyingOracle())
    return OTPAuthService(vault, assembler, clock=lambda: API_NOW)


@pytest.fixture
def service():
    svc = make_test_service()
    main.configure(svc)
    main.auth_limiter = RateLimiter(1000)
    main.register_limiter = RateLimiter(1000)
    yield svc
    main.configure(None)
