import pytest

from blackswan.chain.simulated import ContractRevert, OracleContract, SimulatedOracleClient
from blackswan.errors import TransactionError
from blackswan.orchestrator import CycleResult, UpdateOrchestrator
from tests.conftest import FakeSource, snap

OWNER = "0x90F8bf6A479f320ead074411a4B0e7944Ea8c9C1"
DEV_A = "0x" + "a1" * 20
DEV_B = "0x" + "b2" * 20
DEV_C = "0x" + "c3" * 20
STRANGER = "0x" + "dd" * 20


@pytest.fixture
def contract():
    return OracleContract(owner=OWNER)


def test_owner_can_write_and_events_carry_sender(contract):
    contract.update_both_scores(OWNER, 40, 60)
    assert (contract.black_swan_score, contract.market_peak_score) == (40, 60)
    event = contract.events[-1]
    assert event.name == "BothScoresUpdated"
    assert event.args == {"blackSwanScore": 40, "marketPeakScore": 60}
    assert event.sender == OWNER
    assert event.block_number == 1


def test_stranger_cannot_write(contract):
    with pytest.raises(ContractRevert, match="Not authorized"):
        contract.update_black_swan_score(STRANGER, 1)
    assert contract.black_swan_score == 0
    assert contract.events == []


def test_dev_wallet_can_write_until_removed(contract):
    contract.add_dev_wallet(OWNER, DEV_A)
    contract.update_market_peak_score(DEV_A, 75)
    assert contract.market_peak_score == 75

    contract.remove_dev_wallet(OWNER, DEV_A)
    with pytest.raises(ContractRevert, match="Not authorized"):
        contract.update_market_peak_score(DEV_A, 80)


def test_only_owner_manages_allow_list(contract):
    contract.add_dev_wallet(OWNER, DEV_A)
    with pytest.raises(ContractRevert, match="Only owner"):
        contract.add_dev_wallet(DEV_A, DEV_B)
    with pytest.raises(ContractRevert, match="Only owner"):
        contract.remove_dev_wallet(DEV_A, DEV_A)


def test_allow_list_rejects_duplicates_and_bad_addresses(contract):
    contract.add_dev_wallet(OWNER, DEV_A)
    with pytest.raises(ContractRevert, match="Already a dev wallet"):
        contract.add_dev_wallet(OWNER, DEV_A)
    with pytest.raises(ContractRevert, match="Invalid address"):
        contract.add_dev_wallet(OWNER, "0x" + "00" * 20)
    with pytest.raises(ContractRevert, match="Invalid address"):
        contract.add_dev_wallet(OWNER, "not-an-address")
    with pytest.raises(ContractRevert, match="Not a dev wallet"):
        contract.remove_dev_wallet(OWNER, DEV_B)


def test_removal_swaps_last_into_slot(contract):
    for wallet in (DEV_A, DEV_B, DEV_C):
        contract.add_dev_wallet(OWNER, wallet)
    before = contract.get_dev_wallets()

    contract.remove_dev_wallet(OWNER, DEV_A)

    after = contract.get_dev_wallets()
    assert after == [before[2], before[1]]
    assert not contract.is_dev_wallet(DEV_A)
    assert contract.is_dev_wallet(DEV_B) and contract.is_dev_wallet(DEV_C)


def test_pause_blocks_writes_but_not_reads(contract):
    contract.update_both_scores(OWNER, 1, 2)
    contract.pause(OWNER)

    with pytest.raises(ContractRevert, match="paused"):
        contract.update_both_scores(OWNER, 3, 4)
    assert (contract.black_swan_score, contract.market_peak_score) == (1, 2)

    contract.unpause(OWNER)
    contract.update_both_scores(OWNER, 3, 4)
    assert contract.black_swan_score == 3


def test_pause_is_owner_only(contract):
    contract.add_dev_wallet(OWNER, DEV_A)
    with pytest.raises(ContractRevert, match="Only owner"):
        contract.pause(DEV_A)


def test_invalid_score_reverts_without_partial_write(contract):
    with pytest.raises(ContractRevert):
        contract.update_both_scores(OWNER, 5, -1)
    assert contract.black_swan_score == 0


def test_scores_and_analysis_update(contract):
    contract.update_scores_and_analysis(OWNER, 10, 20, "ipfs://a", "ipfs://b")
    assert contract.black_swan_analysis_ipfs == "ipfs://a"
    assert contract.market_peak_analysis_ipfs == "ipfs://b"
    assert contract.events[-1].args["marketPeakIPFS"] == "ipfs://b"


def test_client_wraps_revert_as_transaction_error(contract):
    client = SimulatedOracleClient(contract, STRANGER)
    with pytest.raises(TransactionError) as err:
        client.update_both_scores(1, 2)
    assert err.value.reason == TransactionError.CONTRACT_REJECTED
    assert "Not authorized" in str(err.value)


def test_client_analysis_writes(contract):
    client = SimulatedOracleClient(contract, OWNER)
    client.update_black_swan_analysis_ipfs("ipfs://x")
    result = client.update_market_peak_analysis_ipfs("ipfs://y")
    assert result.success
    assert result.block_number == 2
    assert client.read_scores()["blackSwanAnalysisIPFS"] == "ipfs://x"
    assert client.read_scores()["marketPeakAnalysisIPFS"] == "ipfs://y"


def test_orchestrator_against_contract_model(contract):
    client = SimulatedOracleClient(contract, OWNER)
    source = FakeSource(snap(40, 60), snap(40, 75), snap(40, 75), snap(50, 80))
    orch = UpdateOrchestrator(source, client)

    assert orch.run_cycle().result is CycleResult.UPDATED
    assert orch.run_cycle().result is CycleResult.UPDATED
    assert orch.run_cycle().result is CycleResult.UNCHANGED

    contract.pause(OWNER)
    assert orch.run_cycle().result is CycleResult.FAILED
    cache = orch.cache_snapshot()
    assert (cache.black_swan, cache.market_peak) == (40, 75)

    contract.unpause(OWNER)
    assert orch.run_cycle().result is CycleResult.UPDATED
    assert [e.name for e in contract.events] == [
        "BothScoresUpdated",
        "MarketPeakScoreUpdated",
        "Paused",
        "Unpaused",
        "BothScoresUpdated",
    ]
    assert (contract.black_swan_score, contract.market_peak_score) == (50, 80)
