import hashlib
import importlib.util
from pathlib import Path

import contracting
import pytest
from contracting.client import ContractingClient
from contracting.compilation import whitelists
from contracting.stdlib.bridge.time import Datetime, Timedelta

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DONATION_PATH = PROJECT_ROOT / "con_confidential_donation.py"
ACL_PATH = PROJECT_ROOT / "con_fhe_acl.py"
BACKEND_PATH = PROJECT_ROOT / "con_fhe_backend.py"
TOKEN_PATH = Path(__file__).resolve().parent / "contracts" / "con_test_token.py"
HELPER_PATH = PROJECT_ROOT / "client_helper.py"
SUBMISSION_PATH = (
    Path(contracting.__file__).resolve().parent / "contracts" / "submission.s.py"
)

DONATION_NAME = "con_confidential_donation"
ACL_NAME = "con_fhe_acl"
BACKEND_NAME = "con_fhe_backend"
TOKEN_NAME = "con_test_token"

HOLDERS = {"alice": 1_000, "bob": 1_000, "carol": 1_000}

# Block time the round fixtures are anchored on
NOW = Datetime(2025, 6, 1, 12, 0, 0)


def at(seconds):
    """Block time `seconds` away from NOW."""
    if seconds < 0:
        return NOW - Timedelta(seconds=-seconds)
    return NOW + Timedelta(seconds=seconds)


@pytest.fixture(scope="session", autouse=True)
def enable_sha3_and_whitelist():
    whitelists.ALLOWED_BUILTINS.update({"hashlib", "decimal"})

    if not hasattr(hashlib, "sha3"):
        def _sha3(data):
            if isinstance(data, str):
                data = data.encode("utf-8")
            return hashlib.sha3_256(data).hexdigest()

        setattr(hashlib, "sha3", _sha3)


@pytest.fixture(scope="session")
def helper_module():
    spec = importlib.util.spec_from_file_location("client_helper_tests", HELPER_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def client():
    client = ContractingClient(signer="operator", metering=False)
    client.flush()
    client.set_submission_contract(str(SUBMISSION_PATH))
    return client


@pytest.fixture
def acl(client):
    client.submit(
        ACL_PATH.read_text(),
        name=ACL_NAME,
        owner=None,
        constructor_args={"backend": BACKEND_NAME},
    )
    return client.get_contract(ACL_NAME)


@pytest.fixture
def backend(client, acl):
    client.submit(
        BACKEND_PATH.read_text(),
        name=BACKEND_NAME,
        owner=None,
        constructor_args={"acl": ACL_NAME},
    )
    return client.get_contract(BACKEND_NAME)


@pytest.fixture
def token(client):
    client.submit(
        TOKEN_PATH.read_text(),
        name=TOKEN_NAME,
        owner=None,
        constructor_args={"holders": dict(HOLDERS)},
    )
    return client.get_contract(TOKEN_NAME)


@pytest.fixture
def contract(client, acl, backend, token):
    client.submit(
        DONATION_PATH.read_text(),
        name=DONATION_NAME,
        owner=None,
        constructor_args={"backend": BACKEND_NAME, "acl": ACL_NAME, "token": TOKEN_NAME},
    )
    return client.get_contract(DONATION_NAME)
