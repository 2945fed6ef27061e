from unittest.mock import MagicMock

import pytest
from web3.exceptions import TimeExhausted, Web3ValidationError

from skillanchor.app.domain.errors import ConfigurationError, ConfirmationError, SubmissionError
from skillanchor.app.infra.chain import LedgerClient

PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
CONTRACT = "0x" + "ab" * 20
RELAYER = "0x" + "cd" * 20
TX = b"\xaa" * 32
DIGEST = b"\x01" * 32


def _client():
    w3 = MagicMock()
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.chain_id = 137
    w3.eth.send_raw_transaction.return_value = TX
    w3.eth.wait_for_transaction_receipt.return_value = {
        "status": 1,
        "transactionHash": TX,
        "blockNumber": 42,
    }
    client = LedgerClient(
        "http://localhost:8545",
        PRIVATE_KEY,
        CONTRACT,
        web3=w3,
        confirmation_timeout=5,
        poll_interval=0.1,
    )
    client.account = MagicMock(address=RELAYER)
    client.account.sign_transaction.return_value = MagicMock(raw_transaction=b"\x02")
    return client, w3


def _anchor(client, **overrides):
    args = dict(
        session_hash=DIGEST,
        task_hash=DIGEST,
        subject_hash=DIGEST,
        rater_did="did:example:edu",
        rated_did="",
        skill_id=3,
        skill_name="Teamwork",
        stars=4,
    )
    args.update(overrides)
    return client.anchor_skill_rating(**args)


@pytest.mark.parametrize(
    "rpc_url, private_key, contract",
    [
        (None, PRIVATE_KEY, CONTRACT),
        ("http://localhost:8545", "", CONTRACT),
        ("http://localhost:8545", PRIVATE_KEY, None),
    ],
)
def test_missing_configuration_fails_fast(rpc_url, private_key, contract):
    with pytest.raises(ConfigurationError):
        LedgerClient(rpc_url, private_key, contract, web3=MagicMock())


def test_invalid_private_key_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        LedgerClient("http://localhost:8545", "not-a-key", CONTRACT, web3=MagicMock())


def test_anchor_returns_receipt_after_confirmation():
    client, w3 = _client()
    receipt = _anchor(client)

    assert receipt.tx_hash == "0x" + "aa" * 32
    assert receipt.block_number == 42
    function = w3.eth.contract.return_value.functions.anchorSingleSkillRating
    function.assert_called_once_with(
        DIGEST, DIGEST, DIGEST, "did:example:edu", "", 3, "Teamwork", 4
    )
    tx_params = function.return_value.build_transaction.call_args.args[0]
    assert tx_params == {"from": RELAYER, "nonce": 7, "chainId": 137}
    w3.eth.get_transaction_count.assert_called_once_with(RELAYER, "pending")
    w3.eth.wait_for_transaction_receipt.assert_called_once_with(
        "0x" + "aa" * 32, timeout=5, poll_latency=0.1
    )


def test_rejected_send_is_a_submission_error():
    client, w3 = _client()
    w3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")
    with pytest.raises(SubmissionError) as excinfo:
        _anchor(client)
    assert excinfo.value.tx_hash is None
    w3.eth.wait_for_transaction_receipt.assert_not_called()


def test_timeout_is_a_confirmation_error_with_tx_hash():
    client, w3 = _client()
    w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("no receipt")
    with pytest.raises(ConfirmationError) as excinfo:
        _anchor(client)
    assert excinfo.value.tx_hash == "0x" + "aa" * 32


def test_reverted_transaction_is_a_submission_error():
    client, w3 = _client()
    w3.eth.wait_for_transaction_receipt.return_value = {
        "status": 0,
        "transactionHash": TX,
        "blockNumber": 42,
    }
    with pytest.raises(SubmissionError) as excinfo:
        _anchor(client)
    assert excinfo.value.tx_hash == "0x" + "aa" * 32


@pytest.mark.parametrize(
    "overrides",
    [
        {"session_hash": b"\x01" * 31},
        {"skill_id": 70000},
        {"stars": 300},
    ],
)
def test_out_of_range_arguments_are_rejected_before_sending(overrides):
    client, w3 = _client()
    with pytest.raises(SubmissionError):
        _anchor(client, **overrides)
    w3.eth.send_raw_transaction.assert_not_called()


def test_abi_validation_failure_is_a_submission_error():
    client, w3 = _client()
    function = w3.eth.contract.return_value.functions.anchorSingleSkillRating
    function.side_effect = Web3ValidationError("Could not identify the intended function")
    with pytest.raises(SubmissionError) as excinfo:
        _anchor(client, skill_name=b"\xff")
    assert excinfo.value.tx_hash is None
    w3.eth.send_raw_transaction.assert_not_called()
