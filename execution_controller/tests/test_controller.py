"""End-to-end candidate walking for the degradation controller."""

import threading
import unittest

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError

from execution_adapter.ethereum.models import TransactionRequest
from execution_controller.config import Settings
from execution_controller.context import build_context
from execution_controller.controller import DegradationController, PipelineCancelledError
from execution_controller.modes import ExecutionMode, ResultStatus
from failures.classifier import http_status_for
from failures.models import ErrorKind
from network.tests._rpc_fakes import (
    ALT_ADDRESS,
    CONTRACT_CODE,
    EMPTY_ADDRESS,
    MINT_DATA,
    NFT_ADDRESS,
    TEST_PRIVATE_KEY,
    FakeClock,
    FakeRpcClient,
    fake_factory,
)
from wallet_core.signer import SignerUnavailableError, TransactionSigner

PRIMARY_URL = "https://primary.example"
SECONDARY_URL = "https://secondary.example"


def _settings(**overrides) -> Settings:
    values = dict(
        rpc_endpoints=(("primary", PRIMARY_URL), ("secondary", SECONDARY_URL)),
        receipt_timeout_seconds=10.0,
        receipt_poll_seconds=2.0,
    )
    values.update(overrides)
    return Settings(**values)


class DegradationControllerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.signer = TransactionSigner.from_private_key(TEST_PRIVATE_KEY)

    def _controller(self, clients, sleep=None, **overrides) -> DegradationController:
        context = build_context(
            _settings(**overrides),
            client_factory=fake_factory(clients),
            signer=self.signer,
            clock=self.clock.monotonic,
            sleep=sleep or self.clock.sleep,
        )
        return DegradationController(context)

    def _request(self, to: str = NFT_ADDRESS, **kwargs) -> TransactionRequest:
        return TransactionRequest(to=to, data=MINT_DATA, **kwargs)

    def test_wrong_chain_endpoint_is_skipped_for_online_one(self) -> None:
        primary = FakeRpcClient(chain_id=1)
        secondary = FakeRpcClient()
        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: secondary})

        result = controller.execute(self._request())

        self.assertTrue(result.success)
        self.assertEqual(result.mode, ExecutionMode.PRODUCTION)
        self.assertEqual(result.status, ResultStatus.CONFIRMED)
        self.assertIsNotNone(result.tx_hash)
        self.assertEqual(result.explorer_url, f"https://aeneid.storyscan.io/tx/{result.tx_hash}")
        self.assertEqual(result.block_number, 500)
        self.assertEqual(result.gas_used, 85_000)
        self.assertEqual(primary.requests, ["eth_chainId"])
        self.assertEqual(len(secondary.sent), 1)
        self.assertEqual([attempt["endpoint"] for attempt in result.attempts], ["secondary"])

    def test_all_endpoints_timing_out_degrades_to_demonstration(self) -> None:
        clients = {
            PRIMARY_URL: FakeRpcClient(chain_error=requests.exceptions.Timeout("read timed out")),
            SECONDARY_URL: FakeRpcClient(chain_error=requests.exceptions.Timeout("read timed out")),
        }
        result = self._controller(clients).execute(self._request())

        self.assertTrue(result.success)
        self.assertEqual(result.mode, ExecutionMode.DEMONSTRATION)
        self.assertIsNone(result.tx_hash)
        self.assertIsNone(result.explorer_url)
        self.assertTrue(result.demonstration_id.startswith("demo-"))
        self.assertEqual(result.classified_error.kind, ErrorKind.ENDPOINT_UNAVAILABLE)
        self.assertEqual(result.attempts, ())
        self.assertFalse(result.explanation["verifiable"])
        self.assertEqual(
            [entry["status"] for entry in result.explanation["endpoints"]],
            ["Timeout", "Timeout"],
        )

    def test_zero_balance_stops_immediately(self) -> None:
        primary = FakeRpcClient(balance=0, codes={NFT_ADDRESS: CONTRACT_CODE, ALT_ADDRESS: CONTRACT_CODE})
        secondary = FakeRpcClient()
        controller = self._controller(
            {PRIMARY_URL: primary, SECONDARY_URL: secondary},
            contract_addresses=(("nft", NFT_ADDRESS), ("alt", ALT_ADDRESS)),
        )

        result = controller.execute(self._request(fallback_addresses=(ALT_ADDRESS,)))

        self.assertFalse(result.success)
        self.assertEqual(result.status, ResultStatus.FAILED)
        self.assertEqual(result.classified_error.kind, ErrorKind.INSUFFICIENT_FUNDS)
        self.assertEqual(http_status_for(result.classified_error.kind), 402)
        self.assertIn(self.signer.address, result.classified_error.raw_message)
        self.assertEqual(len(result.attempts), 1)
        self.assertEqual(primary.sent, [])
        self.assertEqual(secondary.requests, ["eth_chainId"])

    def test_missing_contract_advances_to_fallback_contract(self) -> None:
        primary = FakeRpcClient()
        controller = self._controller(
            {PRIMARY_URL: primary, SECONDARY_URL: FakeRpcClient()},
            contract_addresses=(("empty", EMPTY_ADDRESS), ("nft", NFT_ADDRESS)),
        )
        fallbacks = controller.context.settings.fallback_addresses_for(EMPTY_ADDRESS)

        result = controller.execute(self._request(to=EMPTY_ADDRESS, fallback_addresses=fallbacks))

        self.assertTrue(result.success)
        self.assertEqual(len(result.attempts), 2)
        self.assertEqual(result.attempts[0]["error"]["kind"], "ContractNotFound")
        self.assertIsNone(result.attempts[0]["txHash"])
        self.assertEqual(result.attempts[1]["contract"], NFT_ADDRESS)
        self.assertEqual(result.attempts[1]["state"], "Confirmed")

    def test_unreachable_endpoint_skips_its_remaining_contracts(self) -> None:
        primary = FakeRpcClient(code_error=requests.exceptions.ConnectionError("connection reset by peer"))
        secondary = FakeRpcClient(codes={NFT_ADDRESS: CONTRACT_CODE, ALT_ADDRESS: CONTRACT_CODE})
        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: secondary})

        result = controller.execute(self._request(fallback_addresses=(ALT_ADDRESS,)))

        self.assertTrue(result.success)
        self.assertEqual(
            [(attempt["endpoint"], attempt["contract"]) for attempt in result.attempts],
            [("primary", NFT_ADDRESS), ("secondary", NFT_ADDRESS)],
        )
        self.assertEqual(result.attempts[0]["error"]["kind"], "EndpointUnavailable")

    def test_nonce_conflict_retries_same_pair_with_fresh_nonce(self) -> None:
        primary = FakeRpcClient(send_errors=[ValueError("nonce too low")])
        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: FakeRpcClient()})

        result = controller.execute(self._request())

        self.assertTrue(result.success)
        self.assertEqual(
            [(attempt["endpoint"], attempt["state"]) for attempt in result.attempts],
            [("primary", "Rejected"), ("primary", "Confirmed")],
        )
        self.assertEqual(primary.requests.count("eth_getTransactionCount"), 2)

    def test_lost_broadcast_reply_is_never_resent(self) -> None:
        primary = FakeRpcClient(
            send_errors=[requests.exceptions.ReadTimeout("read timed out")],
            accept_before_error=True,
        )
        secondary = FakeRpcClient()
        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: secondary})

        result = controller.execute(self._request())

        self.assertTrue(result.success)
        self.assertEqual(len(result.attempts), 1)
        self.assertEqual(len(primary.sent), 1)
        self.assertEqual(secondary.sent, [])
        self.assertNotIn("eth_sendRawTransaction", secondary.requests)

    def test_lost_broadcast_reply_without_receipt_reports_first_hash(self) -> None:
        primary = FakeRpcClient(
            send_errors=[requests.exceptions.ReadTimeout("read timed out")],
            accept_before_error=True,
            receipt_status=None,
        )
        secondary = FakeRpcClient()
        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: secondary})

        result = controller.execute(self._request())

        self.assertEqual(result.status, ResultStatus.TIMED_OUT)
        self.assertEqual(result.tx_hash, Web3.to_hex(Web3.keccak(primary.sent[0])))
        self.assertEqual(secondary.sent, [])

    def test_already_known_is_not_retried_with_new_nonce(self) -> None:
        primary = FakeRpcClient(send_errors=[ValueError("already known")], accept_before_error=True)
        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: FakeRpcClient()})

        result = controller.execute(self._request())

        self.assertTrue(result.success)
        self.assertEqual([attempt["state"] for attempt in result.attempts], ["Confirmed"])
        self.assertEqual(primary.requests.count("eth_getTransactionCount"), 1)
        self.assertEqual(primary.requests.count("eth_sendRawTransaction"), 1)

    def test_repeated_nonce_conflict_surfaces_when_nothing_else_remains(self) -> None:
        primary = FakeRpcClient(send_errors=[ValueError("nonce too low"), ValueError("nonce too low")])
        controller = self._controller(
            {PRIMARY_URL: primary},
            rpc_endpoints=(("primary", PRIMARY_URL),),
            demonstration_enabled=False,
        )

        result = controller.execute(self._request())

        self.assertFalse(result.success)
        self.assertEqual(result.classified_error.kind, ErrorKind.NONCE_CONFLICT)
        self.assertEqual(http_status_for(result.classified_error.kind), 409)
        self.assertEqual(len(result.attempts), 2)

    def test_congestion_raises_buffer_for_next_pair(self) -> None:
        primary = FakeRpcClient(send_errors=[ValueError("transaction underpriced: gas price too low")])
        secondary = FakeRpcClient()
        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: secondary})

        result = controller.execute(self._request())

        self.assertTrue(result.success)
        self.assertEqual(result.attempts[0]["error"]["kind"], "GasCongestion")
        self.assertEqual(result.attempts[0]["gasLimit"], 120_000)
        self.assertEqual(result.attempts[1]["gasLimit"], 140_000)

    def test_onchain_revert_is_final_and_distinct(self) -> None:
        primary = FakeRpcClient(receipt_status=0)
        secondary = FakeRpcClient()
        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: secondary})

        result = controller.execute(self._request())

        self.assertFalse(result.success)
        self.assertEqual(result.status, ResultStatus.REVERTED)
        self.assertEqual(result.classified_error.kind, ErrorKind.REVERTED)
        self.assertEqual(result.gas_used, 85_000)
        self.assertEqual(result.block_number, 500)
        self.assertIsNotNone(result.explorer_url)
        self.assertEqual(secondary.sent, [])

    def test_business_revert_during_estimation_stops(self) -> None:
        primary = FakeRpcClient(estimate_error=ContractLogicError("execution reverted: ERC721: token already minted"))
        secondary = FakeRpcClient()
        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: secondary})

        result = controller.execute(self._request())

        self.assertEqual(result.status, ResultStatus.FAILED)
        self.assertEqual(result.classified_error.kind, ErrorKind.REVERTED)
        self.assertEqual(result.classified_error.reason, "ERC721: token already minted")
        self.assertIsNone(result.tx_hash)
        self.assertEqual(primary.sent, [])
        self.assertEqual(secondary.requests, ["eth_chainId"])

    def test_undecodable_revert_invalidates_cache_and_moves_on(self) -> None:
        primary = FakeRpcClient(estimate_error=ContractLogicError("execution reverted"))
        secondary = FakeRpcClient()
        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: secondary})

        result = controller.execute(self._request())

        self.assertTrue(result.success)
        self.assertEqual(result.attempts[1]["endpoint"], "secondary")
        self.assertIsNone(controller.context.resolver.cached(PRIMARY_URL, NFT_ADDRESS))
        self.assertIsNotNone(controller.context.resolver.cached(SECONDARY_URL, NFT_ADDRESS))

    def test_receipt_timeout_reports_hash_without_retrying(self) -> None:
        primary = FakeRpcClient(receipt_status=None)
        secondary = FakeRpcClient()
        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: secondary})

        result = controller.execute(self._request())

        self.assertFalse(result.success)
        self.assertEqual(result.status, ResultStatus.TIMED_OUT)
        self.assertIsNotNone(result.tx_hash)
        self.assertIsNotNone(result.explorer_url)
        self.assertIsNone(result.block_number)
        self.assertEqual(sum(self.clock.sleeps), 10.0)
        self.assertEqual(secondary.sent, [])

    def test_demonstration_can_be_disabled(self) -> None:
        clients = {
            PRIMARY_URL: FakeRpcClient(chain_error=ConnectionError("refused")),
            SECONDARY_URL: FakeRpcClient(chain_error=ConnectionError("refused")),
        }
        result = self._controller(clients, demonstration_enabled=False).execute(self._request())

        self.assertFalse(result.success)
        self.assertEqual(result.mode, ExecutionMode.PRODUCTION)
        self.assertEqual(result.classified_error.kind, ErrorKind.ENDPOINT_UNAVAILABLE)
        self.assertIsNone(result.demonstration_id)

    def test_same_failures_give_same_attempt_sequence(self) -> None:
        def run():
            clients = {
                PRIMARY_URL: FakeRpcClient(send_errors=[ValueError("transaction underpriced")]),
                SECONDARY_URL: FakeRpcClient(codes={ALT_ADDRESS: CONTRACT_CODE}),
            }
            controller = self._controller(clients)
            return controller.execute(self._request(fallback_addresses=(ALT_ADDRESS,))).attempts

        first = run()
        second = run()
        self.assertEqual(first, second)
        self.assertEqual(
            [(attempt["endpoint"], attempt["contract"]) for attempt in first],
            [
                ("primary", NFT_ADDRESS),
                ("primary", ALT_ADDRESS),
                ("secondary", NFT_ADDRESS),
                ("secondary", ALT_ADDRESS),
            ],
        )
        self.assertEqual(first[-1]["state"], "Confirmed")

    def test_demonstration_identifier_is_stable(self) -> None:
        def run():
            clients = {
                PRIMARY_URL: FakeRpcClient(chain_error=TimeoutError("timed out")),
                SECONDARY_URL: FakeRpcClient(chain_error=TimeoutError("timed out")),
            }
            return self._controller(clients).execute(self._request()).demonstration_id

        self.assertEqual(run(), run())

    def test_cancel_before_start_touches_nothing(self) -> None:
        primary = FakeRpcClient()
        cancel = threading.Event()
        cancel.set()
        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: FakeRpcClient()})

        with self.assertRaises(PipelineCancelledError) as caught:
            controller.execute(self._request(), cancel=cancel)
        self.assertEqual(caught.exception.attempts, ())
        self.assertEqual(primary.requests, [])

    def test_cancel_while_pending_keeps_hash(self) -> None:
        primary = FakeRpcClient(receipt_status=None)
        cancel = threading.Event()

        def sleep(seconds: float) -> None:
            self.clock.sleep(seconds)
            cancel.set()

        controller = self._controller({PRIMARY_URL: primary, SECONDARY_URL: FakeRpcClient()}, sleep=sleep)

        with self.assertRaises(PipelineCancelledError) as caught:
            controller.execute(self._request(), cancel=cancel)
        self.assertEqual(len(primary.sent), 1)
        self.assertIsNotNone(caught.exception.pending_tx_hash)
        self.assertIn(caught.exception.pending_tx_hash, str(caught.exception))

    def test_missing_signer_is_reported(self) -> None:
        context = build_context(_settings(), client_factory=fake_factory({}))
        self.assertIsNone(context.signer)
        with self.assertRaises(SignerUnavailableError):
            DegradationController(context).execute(self._request())

    def test_malformed_signer_key_is_recorded(self) -> None:
        context = build_context(_settings(signer_private_key="0x1234"), client_factory=fake_factory({}))
        self.assertIsNone(context.signer)
        self.assertIn("malformed", context.signer_error)


if __name__ == "__main__":
    unittest.main()
