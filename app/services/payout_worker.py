import asyncio
import logging
import time
from typing import Callable, Optional

from app.core.config import Settings
from app.core.exceptions import LedgerSubmissionFailed
from app.services.airdrop_wallet import AirdropWallet
from app.services.ledger_client import LedgerClient, TransferResult
from app.services.notice import NotificationSink
from app.services.reward import PayoutJob, PayoutResult, RewardQueue

logger = logging.getLogger(__name__)

WalletProvider = Callable[[], AirdropWallet]


class PayoutDispatcher:
    """
    Single consumer of the payout queue.

    One job is in flight at a time. A reserved job sits in the in-flight
    list until its outcome is recorded; failed payouts are reported and
    dropped, never retried automatically.
    """

    def __init__(
        self,
        queue: RewardQueue,
        ledger: LedgerClient,
        wallet_provider: WalletProvider,
        notifier: NotificationSink,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ):
        self.queue = queue
        self.ledger = ledger
        self.wallet_provider = wallet_provider
        self.notifier = notifier
        self.idle_seconds = settings.PAYOUT_IDLE_SECONDS
        self.requeue_inflight_on_start = settings.PAYOUT_REQUEUE_INFLIGHT_ON_START
        self.explorer_host = settings.EXPLORER_HOST.rstrip("/")
        self._clock = clock
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self.run_forever())
            logger.info("[payout-queue] worker started")
        return self._task

    async def stop(self) -> None:
        """Ask the loop to exit and wait for the in-flight payout to finish."""
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("[payout-queue] worker stopped")

    async def _call(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def _idle(self) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self.idle_seconds)
        except asyncio.TimeoutError:
            pass

    async def recover_inflight(self) -> int:
        """Report (or requeue, when configured) jobs left reserved by a previous run."""
        leftovers = await self._call(self.queue.inflight)
        if not leftovers:
            return 0
        if self.requeue_inflight_on_start:
            moved = await self._call(self.queue.requeue_inflight)
            logger.warning("[payout-queue] requeued %d in-flight job(s) from previous run", moved)
            return moved
        for raw in leftovers:
            logger.warning("[payout-queue] unconfirmed job from previous run: %s", raw)
            await self._notify(f"[PAYOUT][UNCONFIRMED] {raw} (check chain before requeueing)")
        return len(leftovers)

    async def run_forever(self) -> None:
        try:
            await self.recover_inflight()
        except Exception:
            logger.exception("[payout-queue] in-flight recovery failed")

        while not self._stopping.is_set():
            try:
                processed = await self.run_once()
            except Exception:
                logger.exception("[payout-queue] cycle failed")
                processed = False
            if not processed:
                await self._idle()

    # ------------------------------------------------------------------
    # one cycle
    # ------------------------------------------------------------------

    async def run_once(self) -> bool:
        """Process at most one job. False when the queue was empty."""
        # resolve the wallet first so a config problem leaves the queue untouched
        wallet = await self._call(self.wallet_provider)
        raw = await self._call(self.queue.reserve)
        if raw is None:
            logger.debug("[payout-queue] empty")
            return False

        try:
            job = PayoutJob.from_json(raw)
        except ValueError as e:
            logger.error("[payout-queue] dropping malformed job: %s", e)
            await self._notify(f"[PAYOUT][FAILED] malformed job {raw}")
            await self._call(self.queue.ack, raw)
            return True

        logger.info("[payout-queue] send start %s %s", job.address, job.amount)
        try:
            result = await self._call(self.ledger.submit_transfer, wallet, job.address, job.amount)
        except LedgerSubmissionFailed as e:
            result = TransferResult(code=-1, raw_log=str(e))
        except Exception as e:
            # reserved jobs are always reported and acked
            logger.exception("[payout-queue] unexpected submit error for %s", job.address)
            result = TransferResult(code=-1, raw_log=f"{type(e).__name__}: {e}")

        if result.code != 0:
            logger.error("[payout-queue] !!!FAILED!!! %s: %s", job.address, result.raw_log or result.code)
            await self._notify(f"[PAYOUT][FAILED] {job.amount}ADA {job.address} code={result.code} {result.raw_log}")
        else:
            await self._call(
                self.queue.record_result,
                PayoutResult(
                    address=job.address,
                    transaction_hash=result.transaction_hash,
                    timestamp=int(self._clock()),
                    amount=job.amount,
                    program=job.program,
                ),
            )
            logger.info("[payout-queue] %s : %s", job.address, result.transaction_hash)
            await self._notify(
                f"[PAYOUT][SUCCESS] {job.amount}ADA {job.address}\n"
                f"{self.explorer_host}/transaction/{result.transaction_hash}"
            )

        await self._call(self.queue.ack, raw)
        logger.info("[payout-queue] send end %s", job.address)
        return True

    async def _notify(self, message: str) -> None:
        await self._call(self.notifier.notify, message)
