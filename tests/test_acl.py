import pytest

from conftest import ACL_PATH

HANDLE = "ab" * 32
OTHER = "cd" * 32
STUB_ACL_NAME = "con_fhe_acl_stub"


@pytest.fixture
def stub_acl(client):
    # the ACL trusts a single backend account; a plain signer stands in for it
    client.submit(
        ACL_PATH.read_text(),
        name=STUB_ACL_NAME,
        owner=None,
        constructor_args={"backend": "stub_backend"},
    )
    return client.get_contract(STUB_ACL_NAME)


def test_seed_records_operator_and_backend(acl):
    metadata = acl.get_metadata()
    assert metadata["operator"] == "operator"
    assert metadata["backend"] == "con_fhe_backend"


def test_change_metadata_requires_operator(acl):
    with pytest.raises(AssertionError, match="NotOperator"):
        acl.change_metadata(key="note", value="mallory", signer="mallory")

    acl.change_metadata(key="note", value="grants v1")
    assert acl.get_metadata()["backend"] == "con_fhe_backend"


def test_backend_is_fixed_after_seeding(acl):
    with pytest.raises(AssertionError, match="InvalidMetadata"):
        acl.change_metadata(key="backend", value="operator")

    assert acl.get_metadata()["backend"] == "con_fhe_backend"


def test_backend_grants_and_grantee_may_decrypt(stub_acl):
    stub_acl.allow(handle=HANDLE, account="alice", signer="stub_backend")

    assert stub_acl.may_decrypt(handle=HANDLE, principal="alice")
    assert stub_acl.is_allowed(handle=HANDLE, account="alice")
    assert not stub_acl.may_decrypt(handle=HANDLE, principal="bob")
    assert not stub_acl.may_decrypt(handle=OTHER, principal="alice")


def test_stranger_cannot_grant(stub_acl):
    with pytest.raises(AssertionError, match="NotAllowed"):
        stub_acl.allow(handle=HANDLE, account="mallory", signer="mallory")

    assert not stub_acl.may_decrypt(handle=HANDLE, principal="mallory")


def test_accounts_cannot_pass_grants_on(stub_acl):
    stub_acl.allow(handle=HANDLE, account="alice", signer="stub_backend")

    with pytest.raises(AssertionError, match="NotAllowed: accounts cannot extend grants"):
        stub_acl.allow(handle=HANDLE, account="bob", signer="alice")
    with pytest.raises(AssertionError, match="NotAllowed: accounts cannot extend grants"):
        stub_acl.make_public(handle=HANDLE, signer="alice")

    assert not stub_acl.may_decrypt(handle=HANDLE, principal="bob")
    assert not stub_acl.is_public(handle=HANDLE)


def test_grants_accumulate(stub_acl):
    stub_acl.allow(handle=HANDLE, account="alice", signer="stub_backend")
    stub_acl.allow(handle=HANDLE, account="alice", signer="stub_backend")
    stub_acl.allow(handle=HANDLE, account="bob", signer="stub_backend")

    assert stub_acl.may_decrypt(handle=HANDLE, principal="alice")
    assert stub_acl.may_decrypt(handle=HANDLE, principal="bob")


def test_allow_rejects_empty_account(stub_acl):
    with pytest.raises(AssertionError, match="NotAllowed"):
        stub_acl.allow(handle=HANDLE, account="", signer="stub_backend")


def test_make_public_is_a_wildcard(stub_acl):
    stub_acl.allow(handle=HANDLE, account="owner", signer="stub_backend")
    assert not stub_acl.is_public(handle=HANDLE)

    stub_acl.make_public(handle=HANDLE, signer="stub_backend")

    assert stub_acl.is_public(handle=HANDLE)
    for principal in ["owner", "alice", "anyone"]:
        assert stub_acl.may_decrypt(handle=HANDLE, principal=principal)
    # the wildcard is not an explicit grant
    assert not stub_acl.is_allowed(handle=HANDLE, account="anyone")
    assert not stub_acl.may_decrypt(handle=OTHER, principal="anyone")

    # idempotent
    stub_acl.make_public(handle=HANDLE, signer="stub_backend")
    assert stub_acl.is_public(handle=HANDLE)


def test_make_public_requires_grant(stub_acl):
    with pytest.raises(AssertionError, match="NotAllowed"):
        stub_acl.make_public(handle=HANDLE, signer="mallory")

    assert not stub_acl.is_public(handle=HANDLE)
