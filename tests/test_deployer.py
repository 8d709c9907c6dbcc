from types import SimpleNamespace

import pytest

from ensdeploy import confirm
from ensdeploy.chain import ApeChainHandle, _validate_constructor_abi_inputs
from ensdeploy.constants import L1, L2
from ensdeploy.deployer import DeploymentSession, check_chain_id, layer_tags
from ensdeploy.exceptions import ConfigurationError, RunAborted, UnknownRole
from ensdeploy.orchestrator import UnitStatus
from ensdeploy.params import DeploymentParameters
from ensdeploy.reporting import RecordingReporter
from ensdeploy.units import deployment_unit

DEPLOYER_ADDRESS = "0x" + "11" * 20
OWNER_ADDRESS = "0x" + "22" * 20
ZERO_ADDRESS = "0x" + "00" * 20


@pytest.fixture()
def config(tmp_path):
    return {
        "deployment": {"name": "test"},
        "artifacts": {"dir": str(tmp_path / "artifacts"), "filename": "test.json"},
        "networks": {
            "l2": {
                "name": "optimism-test",
                "network": "optimism:goerli:node",
                "chain_id": 420,
                "tags": ["use_root"],
                "companions": ["l1"],
                "accounts": {"deployer": 0, "owner": 1},
                "contracts": ["ENSRegistry"],
            },
            "l1": {
                "name": "ethereum-test",
                "network": "ethereum:local:test",
                "chain_id": 5,
                "companions": ["l2"],
                "accounts": {"deployer": 0},
                "contracts": ["OPVerifier"],
            },
        },
    }


@pytest.fixture()
def session(config):
    return DeploymentSession(DeploymentParameters(config), reporter=RecordingReporter())


def test_layer_tags():
    registry = deployment_unit("ENSRegistry", tags=["registry"])(lambda context: None)
    resolver = deployment_unit("OwnedResolver", tags=["resolvers"])(lambda context: None)

    selected = layer_tags([registry, resolver], ["registry", "verifier", "OwnedResolver"])

    assert selected == ["registry", "OwnedResolver"]


def test_check_chain_id(session):
    l2 = session.parameters.layer(L2)
    check_chain_id(l2, 420)
    with pytest.raises(ConfigurationError, match="does not match"):
        check_chain_id(l2, 10)

    # local networks run on whatever chain the node reports
    check_chain_id(session.parameters.layer(L1), 1337)


def test_network_context(session, config, tmp_path):
    network = session.network_context(L2, {"deployer": DEPLOYER_ADDRESS})

    assert network.name == "optimism-test"
    assert network.role == L2
    assert network.chain_id == 420
    assert network.has_tag("use_root")
    assert network.companions == {L1: "ethereum-test"}
    assert network.account("deployer") == DEPLOYER_ADDRESS
    assert session.ledger.filepath == tmp_path / "artifacts" / "test.json"


def test_session_run(session, chain_factory):
    network = session.network_context(L2, {"deployer": DEPLOYER_ADDRESS})
    chain = chain_factory(network)
    registry = deployment_unit("ENSRegistry", tags=["registry"])(lambda context: context.deploy())

    report = session.run(chain, [registry])

    assert report.status("ENSRegistry") is UnitStatus.SUCCESS
    assert session.ledger.has("ENSRegistry", "optimism-test")
    assert session.ledger.filepath.exists()
    assert session.reporter.events[-1] == ("run_finished", True)


def test_session_orchestrator_reads_companions(session, chain_factory):
    l2_chain = chain_factory(session.network_context(L2, {"deployer": DEPLOYER_ADDRESS}))
    l2_chain.deploy("ENSRegistry")
    l1_chain = chain_factory(session.network_context(L1, {"deployer": DEPLOYER_ADDRESS}), "c1")

    orchestrator = session.orchestrator(l1_chain)

    assert orchestrator.parameters.name == "ethereum-test"
    remote = orchestrator.bridge.remote_get(L2, "ENSRegistry")
    assert remote.address == session.ledger.get("ENSRegistry", "optimism-test").address


#
# ape chain handle
#


class Signer:
    def __init__(self, address):
        self.address = address
        self.autosign = False

    def set_autosign(self, enabled):
        self.autosign = enabled


def test_ape_chain_accounts(session):
    network = session.network_context(L2, {"deployer": DEPLOYER_ADDRESS})
    signers = {"deployer": Signer(DEPLOYER_ADDRESS), "owner": Signer(OWNER_ADDRESS)}
    chain = ApeChainHandle(network=network, signers=signers, autosign=True)

    assert chain.resolve_account("deployer") == DEPLOYER_ADDRESS
    assert chain.resolve_account("owner") == OWNER_ADDRESS
    assert all(signer.autosign for signer in signers.values())
    with pytest.raises(UnknownRole):
        chain.resolve_account("treasury")


def _abi_input(name, type_):
    return SimpleNamespace(name=name, type=type_)


def test_constructor_arguments_match_abi():
    abi_inputs = [_abi_input("_ens", "address"), _abi_input("_minCommitmentAge", "uint256")]

    _validate_constructor_abi_inputs(
        "L2EthRegistrar", abi_inputs, {"_ens": DEPLOYER_ADDRESS, "_minCommitmentAge": 5}
    )
    _validate_constructor_abi_inputs("L2EthRegistrar", abi_inputs, [DEPLOYER_ADDRESS, 5])
    _validate_constructor_abi_inputs("ENSRegistry", [], ())

    with pytest.raises(ConfigurationError, match="length mismatch"):
        _validate_constructor_abi_inputs("L2EthRegistrar", abi_inputs, [DEPLOYER_ADDRESS])
    with pytest.raises(ConfigurationError, match="does not match the expected ABI name"):
        _validate_constructor_abi_inputs(
            "L2EthRegistrar", abi_inputs, {"_registry": DEPLOYER_ADDRESS, "_minCommitmentAge": 5}
        )
    with pytest.raises(ConfigurationError, match="does not match expected ABI type"):
        _validate_constructor_abi_inputs("L2EthRegistrar", abi_inputs, [5, 5])


#
# operator prompts
#


def _answers(monkeypatch, *answers):
    questions = list()
    replies = iter(answers)

    def fake_input(question):
        questions.append(question)
        return next(replies)

    monkeypatch.setattr("builtins.input", fake_input)
    return questions


def test_declining_aborts(monkeypatch):
    _answers(monkeypatch, "N")
    with pytest.raises(RunAborted):
        confirm._continue()


def test_confirm_resolution(monkeypatch):
    questions = _answers(monkeypatch, "y")
    confirm._confirm_resolution({"_ens": DEPLOYER_ADDRESS}, "Root", "optimism-test")
    assert questions == ["Deploy Root on optimism-test Y/N? "]


def test_zero_address_needs_second_confirmation(monkeypatch):
    questions = _answers(monkeypatch, "y", "n")
    with pytest.raises(RunAborted):
        confirm._confirm_resolution(
            {"_trustedETHController": ZERO_ADDRESS}, "L2PublicResolver", "optimism-test"
        )
    assert len(questions) == 2


def test_console_output(config, chain_factory, capsys):
    session = DeploymentSession(DeploymentParameters(config))
    chain = chain_factory(session.network_context(L2, {"deployer": DEPLOYER_ADDRESS}))
    registry = deployment_unit("ENSRegistry", tags=["registry"])(lambda context: context.deploy())

    session.run(chain, [registry])
    session.run(chain, [registry])

    output = capsys.readouterr().out
    assert "Deploying to optimism-test (l2)" in output
    assert "ENSRegistry deployed at" in output
    assert "ENSRegistry reused at" in output
    assert "Deployment run succeeded." in output
