"""
CONFIDENTIAL DONATION ROUNDS

Donors pledge encrypted amounts to time-boxed rounds and attach a plaintext
token payment held in escrow.

On-chain the contract only ever sees ciphertext handles:
  - total_handle       == add(total_handle, pledge) for every donation
  - donor subtotal     == add(subtotal, pledge) for the donor's donations
Decryption rights live in the ACL contract. The aggregate is granted to the
round owner, each subtotal to its donor, and the aggregate becomes public once
the round's disclosure policy is satisfied.

Escrow is paid out once, to the beneficiary, after the round ends.

Titles and descriptions are free text, capped by the title_length and
description_length metadata (64 and 200 by default, operator adjustable).
"""

I = importlib

# -----------------------------------------------------------------------------
# Parameters
# -----------------------------------------------------------------------------

ZERO_HANDLE = '0' * 64  # "no ciphertext" sentinel
NULL_PRINCIPALS = ['', '0' * 64]
HEX_DIGITS = '0123456789abcdef'

MAX_GOAL = 2 ** 64 - 1

POLICY_AFTER_END = 0
POLICY_AFTER_END_AND_GOAL = 1
POLICY_NEVER = 2

STATUS_UPCOMING = 'upcoming'
STATUS_LIVE = 'live'
STATUS_ENDED = 'ended'

backend_interface = [
    I.Func('trivial_encrypt', args=('value',)),
    I.Func('add', args=('lhs', 'rhs')),
    I.Func('verify_proof', args=('handle', 'proof', 'submitter')),
]

acl_interface = [
    I.Func('allow', args=('handle', 'account')),
    I.Func('make_public', args=('handle',)),
    I.Func('may_decrypt', args=('handle', 'principal')),
]

# Standard XSC001 (Fungible Token) interface
token_interface = [
    I.Func('transfer_from', args=('amount', 'to', 'main_account')),
    I.Func('transfer', args=('amount', 'to')),
    I.Func('balance_of', args=('address',)),
]

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# index -> round record (dense, append-only)
rounds = Hash()

# round_id -> index
round_index = Hash()

round_count = Variable()

# (round_id, donor) -> subtotal handle
donor_totals = Hash()

# contract metadata / config
metadata = Hash()

# Events
RoundCreatedEvent = LogEvent('RoundCreated', {
    'round_id': {'type': str, 'idx': True},
    'owner': {'type': str, 'idx': True},
    'beneficiary': {'type': str, 'idx': True},
    'start_at': {'type': str},
    'end_at': {'type': str},
    'policy': {'type': int},
    'goal': {'type': int},
    'title': {'type': str},
    'description': {'type': str}
})

DonatedEvent = LogEvent('Donated', {
    'round_id': {'type': str, 'idx': True},
    'donor': {'type': str, 'idx': True},
    'amount_paid': {'type': int}
})

TotalPublicUnlockedEvent = LogEvent('TotalPublicUnlocked', {
    'round_id': {'type': str, 'idx': True}
})

PayoutEvent = LogEvent('Payout', {
    'round_id': {'type': str, 'idx': True},
    'beneficiary': {'type': str, 'idx': True},
    'amount': {'type': int}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(backend: str, acl: str, token: str):
    metadata['operator'] = ctx.caller
    metadata['backend'] = backend
    metadata['acl'] = acl
    metadata['token'] = token

    metadata['title_length'] = 64
    metadata['description_length'] = 200

    round_count.set(0)

@export
def get_metadata():
    return {
        'operator': metadata['operator'],
        'backend': metadata['backend'],
        'acl': metadata['acl'],
        'token': metadata['token'],
        'title_length': metadata['title_length'],
        'description_length': metadata['description_length']
    }

@export
def change_metadata(key: str, value: Any):
    assert ctx.caller == metadata['operator'], 'NotOperator: only operator can set metadata'

    # existing handles and escrow belong to the current collaborators
    if key == 'backend' or key == 'acl' or key == 'token':
        assert round_count.get() == 0, 'InvalidMetadata: rounds already reference the current ' + key
    if key == 'backend':
        assert I.enforce_interface(I.import_module(value), backend_interface), 'InvalidBackend: backend contract does not match interface'
    elif key == 'acl':
        assert I.enforce_interface(I.import_module(value), acl_interface), 'InvalidAcl: acl contract does not match interface'
    elif key == 'token':
        assert I.enforce_interface(I.import_module(value), token_interface), 'InvalidToken: token contract not XSC001-compliant'

    metadata[key] = value

# -----------------------------------------------------------------------------
# Collaborators
# -----------------------------------------------------------------------------

def load_backend():
    backend = I.import_module(metadata['backend'])
    assert I.enforce_interface(backend, backend_interface), 'InvalidBackend: backend contract does not match interface'
    return backend

def load_acl():
    acl = I.import_module(metadata['acl'])
    assert I.enforce_interface(acl, acl_interface), 'InvalidAcl: acl contract does not match interface'
    return acl

def load_token():
    token = I.import_module(metadata['token'])
    assert I.enforce_interface(token, token_interface), 'InvalidToken: token contract not XSC001-compliant'
    return token

# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

def assert_round_id(round_id: str):
    assert len(round_id) == 64, 'InvalidRoundId: round id must be 32 bytes of lowercase hex'
    for c in round_id:
        assert c in HEX_DIGITS, 'InvalidRoundId: round id must be 32 bytes of lowercase hex'
    assert round_id != ZERO_HANDLE, 'InvalidRoundId: round id must not be zero'

def get_record(round_id: str):
    index = round_index[round_id]
    assert index is not None, 'RoundNotFound: round not found'
    return index, rounds[index]

def derive_status(record: dict):
    if now < record['start_at']:
        return STATUS_UPCOMING
    if now > record['end_at']:
        return STATUS_ENDED
    return STATUS_LIVE

@export
def create_round(round_id: str,
                 beneficiary: str,
                 goal: int,
                 start_at: datetime.datetime,
                 end_at: datetime.datetime,
                 policy: int,
                 title: str,
                 description: str):
    assert_round_id(round_id)
    assert round_index[round_id] is None, 'RoundAlreadyExists: round id already taken'
    assert start_at < end_at, 'InvalidTimeWindow: start must be before end'
    assert beneficiary not in NULL_PRINCIPALS, 'ZeroBeneficiary: beneficiary is the null principal'
    assert 0 <= goal <= MAX_GOAL, 'InvalidGoal: goal must fit in 64 unsigned bits'
    assert policy in [POLICY_AFTER_END, POLICY_AFTER_END_AND_GOAL, POLICY_NEVER], 'InvalidPolicy: unknown disclosure policy'
    assert len(title) <= metadata['title_length'], 'InvalidMetadata: title too long'
    assert len(description) <= metadata['description_length'], 'InvalidMetadata: description too long'

    total_handle = load_backend().trivial_encrypt(value=0)
    load_acl().allow(handle=total_handle, account=ctx.caller)

    index = round_count.get()
    round_count.set(index + 1)
    round_index[round_id] = index
    rounds[index] = {
        'round_id': round_id,
        'owner': ctx.caller,
        'beneficiary': beneficiary,
        'goal': goal,
        'start_at': start_at,
        'end_at': end_at,
        'policy': policy,
        'escrow': 0,
        'raised': 0,
        'paid_out': False,
        'total_public_unlocked': False,
        'title': title,
        'description': description,
        'total_handle': total_handle,
        'donation_count': 0,
        'created_at': now
    }

    RoundCreatedEvent({
        'round_id': round_id,
        'owner': ctx.caller,
        'beneficiary': beneficiary,
        'start_at': str(start_at),
        'end_at': str(end_at),
        'policy': policy,
        'goal': goal,
        'title': title,
        'description': description
    })
    return round_id

@export
def get_round(round_id: str):
    index, record = get_record(round_id)
    return record

@export
def exists(round_id: str):
    return round_index[round_id] is not None

@export
def get_round_count():
    return round_count.get()

@export
def get_all_round_ids():
    ids = []
    for index in range(round_count.get()):
        ids.append(rounds[index]['round_id'])
    return ids

@export
def get_round_status(round_id: str):
    index, record = get_record(round_id)
    return {
        'status': derive_status(record),
        'unlocked': record['total_public_unlocked'],
        'paid_out': record['paid_out']
    }

# -----------------------------------------------------------------------------
# Tally
# -----------------------------------------------------------------------------

@export
def donate(round_id: str, encrypted_amount: str, proof: str, payment: int):
    index, record = get_record(round_id)
    assert now >= record['start_at'], 'DonationWindowClosed: not started'
    assert now <= record['end_at'], 'DonationWindowClosed: ended'
    assert payment >= 0, 'InvalidPayment: payment must not be negative'

    backend = load_backend()
    assert backend.verify_proof(handle=encrypted_amount, proof=proof, submitter=ctx.caller), \
        'ProofInvalid: encrypted amount rejected by backend'

    if payment > 0:
        load_token().transfer_from(amount=payment, to=ctx.this, main_account=ctx.caller)

    acl = load_acl()

    new_total = backend.add(lhs=record['total_handle'], rhs=encrypted_amount)
    acl.allow(handle=new_total, account=record['owner'])

    subtotal = donor_totals[round_id, ctx.caller]
    if subtotal is None:
        subtotal = backend.trivial_encrypt(value=0)
    new_subtotal = backend.add(lhs=subtotal, rhs=encrypted_amount)
    acl.allow(handle=new_subtotal, account=ctx.caller)

    # Write state
    record['total_handle'] = new_total
    record['escrow'] += payment
    record['raised'] += payment
    record['donation_count'] += 1
    rounds[index] = record
    donor_totals[round_id, ctx.caller] = new_subtotal

    DonatedEvent({
        'round_id': round_id,
        'donor': ctx.caller,
        'amount_paid': payment
    })
    return new_subtotal

@export
def get_my_total(round_id: str):
    handle = donor_totals[round_id, ctx.caller]
    if handle is None:
        return ZERO_HANDLE
    return handle

@export
def get_total_handle(round_id: str):
    index = round_index[round_id]
    if index is None:
        return ZERO_HANDLE
    return rounds[index]['total_handle']

# -----------------------------------------------------------------------------
# Disclosure policy
# -----------------------------------------------------------------------------

def evaluate_policy(record: dict):
    policy = record['policy']
    if policy == POLICY_NEVER:
        return False, 'policy: never'

    if policy == POLICY_AFTER_END:
        if now > record['end_at']:
            return True, ''
        return False, 'after end: round not ended'

    if now <= record['end_at']:
        return False, 'after end & goal: round not ended'
    # plaintext money held, never the confidential pledge
    if record['escrow'] < record['goal']:
        return False, 'after end & goal: goal not reached'
    return True, ''

@export
def check_policy(round_id: str):
    index, record = get_record(round_id)
    if record['total_public_unlocked']:
        return {'eligible': True, 'reason': 'already unlocked'}
    eligible, reason = evaluate_policy(record)
    return {'eligible': eligible, 'reason': reason}

@export
def maybe_make_total_public(round_id: str):
    index, record = get_record(round_id)
    if record['total_public_unlocked']:
        return True

    eligible, reason = evaluate_policy(record)
    assert eligible, 'PolicyNotSatisfied: ' + reason

    load_acl().make_public(handle=record['total_handle'])

    record['total_public_unlocked'] = True
    rounds[index] = record

    TotalPublicUnlockedEvent({'round_id': round_id})
    return True

# -----------------------------------------------------------------------------
# Escrow
# -----------------------------------------------------------------------------

@export
def payout(round_id: str):
    index, record = get_record(round_id)
    assert ctx.caller == record['owner'], 'NotRoundOwner: not round owner'
    assert now > record['end_at'], 'RoundNotEnded: round not ended'
    assert not record['paid_out'], 'AlreadyPaidOut: already paid out'

    amount = record['escrow']

    # effects before the external transfer
    record['paid_out'] = True
    record['escrow'] = 0
    rounds[index] = record

    if amount > 0:
        load_token().transfer(amount=amount, to=record['beneficiary'])

    PayoutEvent({
        'round_id': round_id,
        'beneficiary': record['beneficiary'],
        'amount': amount
    })
    return amount

@export
def get_escrow(round_id: str):
    index, record = get_record(round_id)
    return {
        'escrow': record['escrow'],
        'raised': record['raised'],
        'paid_out': record['paid_out']
    }
