"""
CIPHERTEXT ACCESS CONTROL LIST

Decryption rights are kept apart from ciphertext storage:
  - grants[handle, principal] marks an explicit, permanent grant
  - public[handle] is a wildcard grant for every principal

Grants only accumulate. Nothing here decrypts; the encryption backend asks
may_decrypt() before it answers a decryption request.

Only the backend and contracts holding a grant may extend it. Accounts can
read what they were granted but never pass it on or publish it.
"""

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# (handle, principal) -> bool
grants = Hash(default_value=False)

# handle -> bool
public = Hash(default_value=False)

# contract metadata / config
metadata = Hash()

AllowedEvent = LogEvent('Allowed', {
    'handle': {'type': str, 'idx': True},
    'account': {'type': str, 'idx': True},
    'granted_by': {'type': str}
})

MadePublicEvent = LogEvent('MadePublic', {
    'handle': {'type': str, 'idx': True},
    'granted_by': {'type': str}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(backend: str):
    metadata['operator'] = ctx.caller
    # the only contract allowed to grant on handles it has not been granted
    metadata['backend'] = backend

# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------

@export
def get_metadata():
    return {
        'operator': metadata['operator'],
        'backend': metadata['backend']
    }

@export
def change_metadata(key: str, value: Any):
    assert ctx.caller == metadata['operator'], 'NotOperator: only operator can set metadata'
    # every grant decision trusts the backend; it is fixed at seeding
    assert key != 'backend', 'InvalidMetadata: backend cannot be changed'
    metadata[key] = value

@export
def may_decrypt(handle: str, principal: str):
    return public[handle] or grants[handle, principal]

@export
def is_allowed(handle: str, account: str):
    return grants[handle, account]

@export
def is_public(handle: str):
    return public[handle]

# -----------------------------------------------------------------------------
# Grants
# -----------------------------------------------------------------------------

def assert_may_grant(handle: str):
    if ctx.caller == metadata['backend']:
        return
    assert ctx.caller != ctx.signer, 'NotAllowed: accounts cannot extend grants'
    assert grants[handle, ctx.caller], 'NotAllowed: caller holds no grant on handle'

@export
def allow(handle: str, account: str):
    assert_may_grant(handle)
    assert account != '', 'NotAllowed: empty account'

    if not grants[handle, account]:
        grants[handle, account] = True
        AllowedEvent({
            'handle': handle,
            'account': account,
            'granted_by': ctx.caller
        })

@export
def make_public(handle: str):
    assert_may_grant(handle)

    if not public[handle]:
        public[handle] = True
        MadePublicEvent({
            'handle': handle,
            'granted_by': ctx.caller
        })
