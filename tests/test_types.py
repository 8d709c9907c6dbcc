import click
import pytest
from eth_utils import to_checksum_address

from ensdeploy.constants import PARAMS_DIR
from ensdeploy.types import ChecksumAddress, MinInt, ParamsFile


def test_min_int():
    min_int = MinInt(0)
    assert min_int.convert("3", None, None) == 3
    assert min_int.convert(0, None, None) == 0
    with pytest.raises(click.BadParameter, match="less than the minimum"):
        min_int.convert("-1", None, None)
    with pytest.raises(click.BadParameter, match="not a valid integer"):
        min_int.convert("three", None, None)


def test_checksum_address():
    address = "0x" + "ab" * 20
    assert ChecksumAddress().convert(address, None, None) == to_checksum_address(address)
    with pytest.raises(click.BadParameter, match="Invalid ethereum address"):
        ChecksumAddress().convert("0x1234", None, None)


def test_params_file_by_name():
    params_file = ParamsFile()
    assert params_file.convert("local", None, None) == PARAMS_DIR / "local.yml"
    assert params_file.convert("goerli.yml", None, None) == PARAMS_DIR / "goerli.yml"


def test_params_file_by_path(tmp_path):
    filepath = tmp_path / "custom.yml"
    filepath.write_text("deployment: {}\n")
    assert ParamsFile().convert(str(filepath), None, None) == filepath
    assert ParamsFile().convert(filepath, None, None) == filepath


def test_missing_params_file():
    with pytest.raises(click.BadParameter, match="No deployment parameters file"):
        ParamsFile().convert("mainnet", None, None)
