import asyncio
from unittest.mock import Mock

import pytest
import requests

from app.core.exceptions import LedgerSubmissionFailed
from app.services.airdrop_wallet import AirdropWalletError
from app.services.ledger_client import LedgerClient, TransferResult
from app.services.payout_worker import PayoutDispatcher
from app.services.reward import PayoutJob


@pytest.fixture
def chain():
    chain = Mock(spec=LedgerClient)
    chain.submit_transfer.return_value = TransferResult(code=0, transaction_hash="tx-ok")
    return chain


@pytest.fixture
def airdrop_wallet():
    return Mock(name="airdrop_wallet")


@pytest.fixture
def dispatcher(services, chain, airdrop_wallet, notifier, test_settings, clock):
    return PayoutDispatcher(services.queue, chain, lambda: airdrop_wallet, notifier, test_settings, clock=clock)


def _addresses(queue):
    return [PayoutJob.from_json(raw).address for raw in queue.pending()]


class TestPayoutCycle:
    """One dispatcher cycle"""

    def test_empty_queue(self, dispatcher, chain):
        assert asyncio.run(dispatcher.run_once()) is False
        chain.submit_transfer.assert_not_called()

    def test_success_records_result(self, dispatcher, services, chain, airdrop_wallet, notifier):
        services.queue.enqueue(PayoutJob(address="addr_a", amount="2", program="mint"))

        assert asyncio.run(dispatcher.run_once()) is True

        chain.submit_transfer.assert_called_once_with(airdrop_wallet, "addr_a", "2")
        results = services.queue.results()
        assert len(results) == 1
        assert results[0].transaction_hash == "tx-ok"
        assert results[0].timestamp == 1_700_000_000
        assert results[0].program == "mint"
        assert services.queue.pending() == []
        assert services.queue.inflight() == []
        assert notifier.messages == ["[PAYOUT][SUCCESS] 2ADA addr_a\nhttps://explorer.test/transaction/tx-ok"]

    def test_failure_code_drops_job(self, dispatcher, services, chain, notifier):
        """Concrete scenario: a nonzero submission code drops the job and moves on"""
        services.queue.enqueue(PayoutJob(address="addr_a", amount="10.0"))
        services.queue.enqueue(PayoutJob(address="addr_b", amount="1"))
        chain.submit_transfer.side_effect = [
            TransferResult(code=3, raw_log="insufficient funds"),
            TransferResult(code=0, transaction_hash="tx-b"),
        ]

        assert asyncio.run(dispatcher.run_once()) is True

        assert _addresses(services.queue) == ["addr_b"]
        assert services.queue.inflight() == []
        assert services.queue.results() == []
        assert notifier.messages[0].startswith("[PAYOUT][FAILED] 10.0ADA addr_a")

        assert asyncio.run(dispatcher.run_once()) is True
        assert [result.address for result in services.queue.results()] == ["addr_b"]

    def test_submission_exception_reported_as_failure(self, dispatcher, services, chain, notifier):
        services.queue.enqueue(PayoutJob(address="addr_a", amount="1"))
        chain.submit_transfer.side_effect = LedgerSubmissionFailed("connection reset")

        assert asyncio.run(dispatcher.run_once()) is True

        assert services.queue.inflight() == []
        assert services.queue.results() == []
        assert "code=-1" in notifier.messages[0]

    def test_unexpected_submit_error_still_acked(self, dispatcher, services, chain, notifier):
        services.queue.enqueue(PayoutJob(address="addr_a", amount="1"))
        chain.submit_transfer.side_effect = RuntimeError("boom")

        assert asyncio.run(dispatcher.run_once()) is True

        assert services.queue.inflight() == []
        assert services.queue.pending() == []
        assert notifier.messages == ["[PAYOUT][FAILED] 1ADA addr_a code=-1 RuntimeError: boom"]

    def test_chain_backend_unreachable_drops_each_job(
        self, services, airdrop_wallet, notifier, test_settings, monkeypatch
    ):
        """Blockfrost down while building the chain context: every job is reported and acked"""
        monkeypatch.setattr(
            "app.services.ledger_client.BlockFrostChainContext",
            Mock(side_effect=requests.ConnectionError("blockfrost unreachable")),
        )
        ledger = LedgerClient(test_settings, http=Mock())
        dispatcher = PayoutDispatcher(services.queue, ledger, lambda: airdrop_wallet, notifier, test_settings)
        services.queue.enqueue(PayoutJob(address="addr_a", amount="1"))
        services.queue.enqueue(PayoutJob(address="addr_b", amount="1"))

        assert asyncio.run(dispatcher.run_once()) is True
        assert asyncio.run(dispatcher.run_once()) is True

        assert services.queue.pending() == []
        assert services.queue.inflight() == []
        assert services.queue.results() == []
        assert len(notifier.messages) == 2
        assert notifier.messages[0].startswith("[PAYOUT][FAILED] 1ADA addr_a code=-1")
        assert notifier.messages[1].startswith("[PAYOUT][FAILED] 1ADA addr_b code=-1")

    def test_malformed_job_dropped(self, dispatcher, services, chain, notifier):
        services.store.list_push(services.queue.queue_key, "garbage")

        assert asyncio.run(dispatcher.run_once()) is True

        chain.submit_transfer.assert_not_called()
        assert services.queue.inflight() == []
        assert notifier.messages == ["[PAYOUT][FAILED] malformed job garbage"]

    def test_fifo_processing(self, dispatcher, services, chain):
        for address in ("a", "b", "c"):
            services.queue.enqueue(PayoutJob(address=address, amount="1"))

        async def drain():
            while await dispatcher.run_once():
                pass

        asyncio.run(drain())
        assert [call.args[1] for call in chain.submit_transfer.call_args_list] == ["a", "b", "c"]

    def test_wallet_problem_leaves_queue_untouched(self, services, chain, notifier, test_settings):
        def broken_wallet():
            raise AirdropWalletError("airdrop wallet file not found")

        dispatcher = PayoutDispatcher(services.queue, chain, broken_wallet, notifier, test_settings)
        services.queue.enqueue(PayoutJob(address="addr_a", amount="1"))

        with pytest.raises(AirdropWalletError):
            asyncio.run(dispatcher.run_once())
        assert _addresses(services.queue) == ["addr_a"]
        assert services.queue.inflight() == []


class TestInflightRecovery:
    """Jobs left reserved by a crashed run"""

    def test_unconfirmed_jobs_reported(self, dispatcher, services, notifier):
        services.queue.enqueue(PayoutJob(address="addr_a", amount="1"))
        raw = services.queue.reserve()

        assert asyncio.run(dispatcher.recover_inflight()) == 1

        assert services.queue.inflight() == [raw]
        assert services.queue.pending() == []
        assert notifier.messages[0].startswith("[PAYOUT][UNCONFIRMED]")

    def test_requeue_when_configured(self, services, chain, airdrop_wallet, notifier, test_settings):
        settings = test_settings.model_copy(update={"PAYOUT_REQUEUE_INFLIGHT_ON_START": True})
        dispatcher = PayoutDispatcher(services.queue, chain, lambda: airdrop_wallet, notifier, settings)
        services.queue.enqueue(PayoutJob(address="addr_a", amount="1"))
        services.queue.reserve()

        assert asyncio.run(dispatcher.recover_inflight()) == 1

        assert _addresses(services.queue) == ["addr_a"]
        assert services.queue.inflight() == []
        assert notifier.messages == []

    def test_nothing_to_recover(self, dispatcher):
        assert asyncio.run(dispatcher.recover_inflight()) == 0


class TestDispatcherLoop:
    def test_loop_drains_queue_and_stops(self, dispatcher, services, chain):
        for address in ("a", "b"):
            services.queue.enqueue(PayoutJob(address=address, amount="1"))

        async def scenario():
            dispatcher.start()
            for _ in range(500):
                if not services.queue.pending() and not services.queue.inflight():
                    break
                await asyncio.sleep(0.01)
            await dispatcher.stop()

        asyncio.run(scenario())

        assert chain.submit_transfer.call_count == 2
        assert len(services.queue.results()) == 2

    def test_loop_survives_cycle_errors(self, services, chain, notifier, test_settings):
        calls = []

        def flaky_wallet():
            calls.append(1)
            if len(calls) == 1:
                raise AirdropWalletError("not yet")
            return Mock()

        dispatcher = PayoutDispatcher(services.queue, chain, flaky_wallet, notifier, test_settings)
        services.queue.enqueue(PayoutJob(address="addr_a", amount="1"))

        async def scenario():
            dispatcher.start()
            for _ in range(500):
                if services.queue.results():
                    break
                await asyncio.sleep(0.01)
            await dispatcher.stop()

        asyncio.run(scenario())
        assert len(services.queue.results()) == 1
