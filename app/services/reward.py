"""
Reward eligibility and payout queue.

One reward per address per program. The marker is written with a
set-if-absent, and only the caller that created it enqueues the payout, so
two concurrent qualifying events for the same address cannot both pay.

store layout:
    rewardmarker:<program>  hash address -> 1
    payoutqueue             list of PayoutJob JSON (push head, pop tail)
    payoutqueue:inflight    jobs reserved by the worker, not yet acknowledged
    payoutresults           sorted set of PayoutResult JSON scored by unix time
"""

import json
import logging
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import List, Optional

from app.core.config import Settings
from app.core.store import KeyValueStore

logger = logging.getLogger(__name__)


class RewardProgram(str, Enum):
    MINT = "mint"
    GALLERY = "gallery"


@dataclass(frozen=True)
class PayoutJob:
    address: str
    amount: str  # decimal string, ADA
    program: str = ""

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "PayoutJob":
        """Raises ValueError for anything that is not a usable job."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"payout job is not JSON: {raw!r}") from e
        if not isinstance(data, dict) or not data.get("address"):
            raise ValueError(f"payout job has no address: {raw!r}")
        amount = str(data.get("amount", ""))
        try:
            Decimal(amount)
        except InvalidOperation as e:
            raise ValueError(f"payout job has invalid amount: {raw!r}") from e
        return cls(address=str(data["address"]), amount=amount, program=str(data.get("program", "")))


@dataclass(frozen=True)
class PayoutResult:
    address: str
    transaction_hash: str
    timestamp: int
    amount: str = ""
    program: str = ""

    def to_json(self) -> str:
        return json.dumps(
            {
                "address": self.address,
                "transactionHash": self.transaction_hash,
                "timestamp": self.timestamp,
                "amount": self.amount,
                "program": self.program,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "PayoutResult":
        data = json.loads(raw)
        return cls(
            address=data["address"],
            transaction_hash=data["transactionHash"],
            timestamp=int(data["timestamp"]),
            amount=data.get("amount", ""),
            program=data.get("program", ""),
        )


class RewardQueue:
    """FIFO of pending payouts; many producers, a single consumer."""

    def __init__(self, store: KeyValueStore, settings: Settings):
        self.store = store
        self.queue_key = settings.PAYOUT_QUEUE_KEY
        self.inflight_key = f"{settings.PAYOUT_QUEUE_KEY}:inflight"
        self.result_key = settings.PAYOUT_RESULT_KEY

    def enqueue(self, job: PayoutJob) -> int:
        return self.store.list_push(self.queue_key, job.to_json())

    def pop(self) -> Optional[str]:
        """Remove and return the oldest job without in-flight tracking."""
        return self.store.list_pop_tail(self.queue_key)

    def reserve(self) -> Optional[str]:
        """Move the oldest job into the in-flight list and return its raw JSON."""
        return self.store.list_move_tail(self.queue_key, self.inflight_key)

    def ack(self, raw: str) -> None:
        self.store.list_remove(self.inflight_key, raw)

    def pending(self) -> List[str]:
        """Queued jobs, oldest first."""
        return list(reversed(self.store.list_range(self.queue_key)))

    def inflight(self) -> List[str]:
        return self.store.list_range(self.inflight_key)

    def requeue_inflight(self) -> int:
        moved = 0
        while self.store.list_move_tail(self.inflight_key, self.queue_key) is not None:
            moved += 1
        return moved

    def record_result(self, result: PayoutResult) -> None:
        self.store.sorted_set_add(self.result_key, result.timestamp, result.to_json())

    def results(self, n: int = 100) -> List[PayoutResult]:
        """Most recent payout results, newest first."""
        return [PayoutResult.from_json(raw) for raw, _ in self.store.sorted_set_top_n(self.result_key, n)]


class RewardEligibilityTracker:
    def __init__(self, store: KeyValueStore, queue: RewardQueue, settings: Settings):
        self.store = store
        self.queue = queue
        self.marker_prefix = settings.REWARD_MARKER_PREFIX

    def marker_key(self, program: RewardProgram | str) -> str:
        return f"{self.marker_prefix}{RewardProgram(program).value}"

    def is_eligible(self, address: str, program: RewardProgram | str) -> bool:
        return self.store.hash_get(self.marker_key(program), address) is None

    def mark_rewarded(self, address: str, program: RewardProgram | str) -> bool:
        """Create the marker. True only for the call that created it."""
        return self.store.hash_set_if_absent(self.marker_key(program), address, 1)

    def claim(self, address: str, program: RewardProgram | str, amount: str) -> bool:
        """
        Mark the address and enqueue its payout as one step.

        The marker goes first: a crash between the two writes leaves an
        address marked without a job, never a job paid twice.
        """
        program = RewardProgram(program)
        if not address:
            return False
        if not self.mark_rewarded(address, program):
            logger.info("[reward] %s already rewarded for %s", address, program.value)
            return False
        self.queue.enqueue(PayoutJob(address=address, amount=amount, program=program.value))
        logger.info("[reward] queued %s %s for %s", amount, program.value, address)
        return True

    def rewarded_addresses(self, program: RewardProgram | str) -> List[str]:
        return list(self.store.hash_get_all(self.marker_key(program)).keys())
