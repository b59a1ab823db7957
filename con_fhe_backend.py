"""
PLAINTEXT REFERENCE ENCRYPTION BACKEND

Implements the encrypted-uint64 interface the donation contract depends on,
performing the equivalent plaintext arithmetic behind opaque handles:
  - encrypt(value, target)    -> {'handle', 'proof'}   (called by the submitter)
  - trivial_encrypt(value)    -> handle
  - add(lhs, rhs)             -> handle                 (wraps modulo 2**64)
  - verify_proof(handle, proof, submitter) -> bool
  - decrypt(handle)           -> int, only if the ACL allows the caller

Plaintexts sit in contract state, so this backend keeps values confidential at
the interface level only. It exists to develop and test contracts against the
same call graph a real FHE coprocessor exposes.

Computation is gated the way an FHE coprocessor gates it: a contract may only
add handles it has been granted, and every new handle is granted to whoever
produced it.
"""

I = importlib

UINT64_MODULUS = 2 ** 64

acl_interface = [
    I.Func('allow', args=('handle', 'account')),
    I.Func('is_allowed', args=('handle', 'account')),
    I.Func('may_decrypt', args=('handle', 'principal')),
]

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# handle -> {'value': int, 'kind': str, 'producer': str, 'target': str}
ciphertexts = Hash()

# contract metadata / config
metadata = Hash()

next_handle_id = Variable()

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def domain_hash(*parts):
    s = "|".join(str(x) for x in parts)
    return hashlib.sha3("FHE:v1|" + s)

def load_acl():
    acl = I.import_module(metadata['acl'])
    assert I.enforce_interface(acl, acl_interface), 'InvalidAcl: acl contract does not match interface'
    return acl

def assert_uint64(value: int):
    assert isinstance(value, int) and not isinstance(value, bool), 'InvalidValue: value must be an integer'
    assert 0 <= value < UINT64_MODULUS, 'InvalidValue: value out of uint64 range'

def new_handle(value: int, kind: str, target: str = ''):
    hid = next_handle_id.get()
    next_handle_id.set(hid + 1)

    handle = domain_hash('handle', ctx.this, hid)
    ciphertexts[handle] = {
        'value': value,
        'kind': kind,
        'producer': ctx.caller,
        'target': target
    }
    # the producer may compute on and grant the new handle
    load_acl().allow(handle=handle, account=ctx.caller)
    return handle

def input_proof(handle: str, submitter: str, target: str):
    return domain_hash('proof', handle, submitter, target)

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(acl: str):
    metadata['operator'] = ctx.caller
    metadata['acl'] = acl
    next_handle_id.set(1)

@export
def get_metadata():
    return {
        'operator': metadata['operator'],
        'acl': metadata['acl'],
        'handles': next_handle_id.get() - 1
    }

# -----------------------------------------------------------------------------
# Encryption interface
# -----------------------------------------------------------------------------

@export
def encrypt(value: int, target: str):
    # inputs are bound to the submitter and to the contract that will consume them
    assert_uint64(value)
    assert target != '', 'InvalidValue: input must name its target contract'
    handle = new_handle(value, 'input', target)
    return {
        'handle': handle,
        'proof': input_proof(handle, ctx.caller, target)
    }

@export
def trivial_encrypt(value: int):
    assert_uint64(value)
    return new_handle(value, 'trivial')

@export
def verify_proof(handle: str, proof: str, submitter: str):
    data = ciphertexts[handle]
    if data is None or data['kind'] != 'input':
        return False
    if data['producer'] != submitter or data['target'] != ctx.caller:
        return False
    if proof != input_proof(handle, submitter, ctx.caller):
        return False

    # admit the verified input for computation by the verifying contract
    load_acl().allow(handle=handle, account=ctx.caller)
    return True

@export
def add(lhs: str, rhs: str):
    acl = load_acl()
    left = ciphertexts[lhs]
    right = ciphertexts[rhs]
    assert left is not None and right is not None, 'UnknownHandle: operand does not exist'
    assert acl.is_allowed(handle=lhs, account=ctx.caller), 'NotAllowed: caller may not use lhs'
    assert acl.is_allowed(handle=rhs, account=ctx.caller), 'NotAllowed: caller may not use rhs'

    return new_handle((left['value'] + right['value']) % UINT64_MODULUS, 'sum')

@export
def decrypt(handle: str):
    data = ciphertexts[handle]
    assert data is not None, 'UnknownHandle: handle does not exist'
    assert load_acl().may_decrypt(handle=handle, principal=ctx.caller), 'Denied: no decryption grant'
    return data['value']
