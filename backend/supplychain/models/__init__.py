from .participants import Participant, ParticipantRole, SecurityEvent
from .escrow import EscrowEntry, Account
from .batches import Batch, ReturnRequest
from .events import LedgerEvent

__all__ = [
    'Participant', 'ParticipantRole', 'SecurityEvent',
    'EscrowEntry', 'Account',
    'Batch', 'ReturnRequest',
    'LedgerEvent',
]
