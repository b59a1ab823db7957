import hashlib
import logging

log = logging.getLogger(__name__)

# ---- Chain-constant parameters & helpers (mirror contract) ----

ZERO_HANDLE = '0' * 64
NULL_PRINCIPALS = ('', '0' * 64)
HEX_DIGITS = '0123456789abcdef'

MAX_GOAL = 2**64 - 1

POLICY_AFTER_END = 0
POLICY_AFTER_END_AND_GOAL = 1
POLICY_NEVER = 2
POLICIES = (POLICY_AFTER_END, POLICY_AFTER_END_AND_GOAL, POLICY_NEVER)

STATUS_UPCOMING = 'upcoming'
STATUS_LIVE = 'live'
STATUS_ENDED = 'ended'

TITLE_LENGTH = 64
DESCRIPTION_LENGTH = 200

def sha3_hex(s: str) -> str:
    # Matches Xian env semantics: hex input is hashed as bytes, anything else as utf-8
    try:
        data = bytes.fromhex(s)
    except ValueError:
        data = s.encode('utf-8')
    return hashlib.sha3_256(data).hexdigest()

def fhe_domain_hash(*parts) -> str:
    # Mirrors domain_hash in con_fhe_backend
    return sha3_hex("FHE:v1|" + "|".join(str(x) for x in parts))

def expected_input_proof(handle: str, submitter: str, target: str) -> str:
    """The proof the reference backend binds to an input for its submitter and target contract."""
    return fhe_domain_hash("proof", handle, submitter, target)

def round_id_from_label(label: str) -> str:
    """
    Derive the 32-byte round id (64 hex chars) conventionally used for a
    human-chosen label such as "round-1".
    """
    if not label:
        raise ValueError("Label must not be empty")
    return hashlib.sha3_256(label.encode('utf-8')).hexdigest()

def is_round_id(value) -> bool:
    if not isinstance(value, str) or len(value) != 64 or value == ZERO_HANDLE:
        return False
    return all(c in HEX_DIGITS for c in value)

def is_sentinel(handle) -> bool:
    """True for the "no ciphertext" handle returned by get_my_total/get_total_handle."""
    return handle is None or handle == ZERO_HANDLE

# ---- High-level builders -----------------------------------------------------

def build_create_round(label: str,
                       beneficiary: str,
                       goal: int,
                       start_at,
                       end_at,
                       policy: int = POLICY_AFTER_END,
                       title: str = '',
                       description: str = '',
                       round_id: str = None):
    """
    Returns kwargs for contract.create_round():
        (round_id, beneficiary, goal, start_at, end_at, policy, title, description)
    Runs the contract's own checks first so obviously bad rounds fail locally.
    start_at/end_at are contracting Datetime values.
    """
    if round_id is None:
        round_id = round_id_from_label(label)
    if not is_round_id(round_id):
        raise ValueError("Round id must be 32 bytes of lowercase hex")
    if beneficiary in NULL_PRINCIPALS:
        raise ValueError("Beneficiary must not be the null principal")
    if not start_at < end_at:
        raise ValueError("Round must start before it ends")
    if isinstance(goal, bool) or not isinstance(goal, int) or not 0 <= goal <= MAX_GOAL:
        raise ValueError("Goal must fit in 64 unsigned bits")
    if policy not in POLICIES:
        raise ValueError("Unknown disclosure policy: %r" % (policy,))
    if len(title) > TITLE_LENGTH or len(description) > DESCRIPTION_LENGTH:
        raise ValueError("Title or description too long")

    log.debug("create_round %s (%s) policy=%s goal=%s", round_id, label, policy, goal)
    return {
        'round_id': round_id,
        'beneficiary': beneficiary,
        'goal': goal,
        'start_at': start_at,
        'end_at': end_at,
        'policy': policy,
        'title': title,
        'description': description
    }

def build_donation(round_id: str, encrypted_input: dict, payment: int = 0):
    """
    Returns kwargs for contract.donate():
        (round_id, encrypted_amount, proof, payment)
    encrypted_input is what backend.encrypt() returned to the donor.
    The payment is independent of the encrypted pledge.
    """
    if not is_round_id(round_id):
        raise ValueError("Round id must be 32 bytes of lowercase hex")
    if not encrypted_input or not encrypted_input.get('handle') or not encrypted_input.get('proof'):
        raise ValueError("Encrypted input must carry a handle and a proof")
    if isinstance(payment, bool) or not isinstance(payment, int) or payment < 0:
        raise ValueError("Payment must be a non-negative integer")

    return {
        'round_id': round_id,
        'encrypted_amount': encrypted_input['handle'],
        'proof': encrypted_input['proof'],
        'payment': payment
    }

# ---- Read-side mirrors -------------------------------------------------------

def round_status(record: dict, now) -> str:
    if now < record['start_at']:
        return STATUS_UPCOMING
    if now > record['end_at']:
        return STATUS_ENDED
    return STATUS_LIVE

def unlock_eligibility(record: dict, now):
    """
    Mirrors the contract's disclosure policy engine.
    Returns (eligible, reason); reason is '' when eligible.
    """
    if record['total_public_unlocked']:
        return True, 'already unlocked'

    policy = record['policy']
    if policy == POLICY_NEVER:
        return False, 'policy: never'
    if policy == POLICY_AFTER_END:
        if now > record['end_at']:
            return True, ''
        return False, 'after end: round not ended'
    if now <= record['end_at']:
        return False, 'after end & goal: round not ended'
    if record['escrow'] < record['goal']:
        return False, 'after end & goal: goal not reached'
    return True, ''

def can_payout(record: dict, caller: str, now) -> bool:
    return caller == record['owner'] and now > record['end_at'] and not record['paid_out']

def parse_error(error):
    """
    Split a contract assertion ("Kind: reason") into (kind, reason).
    Messages without a kind prefix come back as (None, message).
    """
    message = str(error.args[0]) if isinstance(error, BaseException) and error.args else str(error)
    kind, sep, reason = message.partition(': ')
    if sep and kind and kind.isidentifier() and kind[0].isupper():
        return kind, reason
    return None, message

# ---- Convenience: wallet-side donor ledger (optional) ------------------------

class DonorLedger:
    """
    Optional local helper to remember what this donor pledged and paid per round,
    so a decrypted subtotal can be checked without trusting anyone else.
    """
    def __init__(self):
        self.pledges = {}
        self.payments = {}

    def record(self, round_id: str, pledge: int, payment: int = 0):
        self.pledges[round_id] = self.pledges.get(round_id, 0) + pledge
        self.payments[round_id] = self.payments.get(round_id, 0) + payment
        return self.pledges[round_id]

    def expected_total(self, round_id: str) -> int:
        return self.pledges.get(round_id, 0)

    def paid(self, round_id: str) -> int:
        return self.payments.get(round_id, 0)

    def matches(self, round_id: str, decrypted: int) -> bool:
        return decrypted == self.expected_total(round_id) % (MAX_GOAL + 1)
