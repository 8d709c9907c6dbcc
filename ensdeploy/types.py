from pathlib import Path

import click
from eth_utils import to_checksum_address

from ensdeploy.constants import PARAMS_DIR


class MinInt(click.ParamType):
    name = "minint"

    def __init__(self, min_value):
        self.min_value = min_value

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            ivalue = value
        else:
            try:
                ivalue = int(value)
            except ValueError:
                self.fail(f"{value} is not a valid integer", param, ctx)
        if ivalue < self.min_value:
            self.fail(
                f"{value} is less than the minimum allowed value of {self.min_value}", param, ctx
            )
        return ivalue


class ChecksumAddress(click.ParamType):
    name = "checksum_address"

    def convert(self, value, param, ctx):
        try:
            value = to_checksum_address(value=value)
        except ValueError:
            self.fail("Invalid ethereum address", param, ctx)
        else:
            return value


class ParamsFile(click.ParamType):
    """A deployment parameters file, either a path or a name under the bundled params directory."""

    name = "params_file"

    def convert(self, value, param, ctx):
        if isinstance(value, Path):
            filepath = value
        else:
            filepath = Path(value)
        if filepath.exists():
            return filepath
        for candidate in (PARAMS_DIR / value, PARAMS_DIR / f"{value}.yml"):
            if candidate.exists():
                return candidate
        self.fail(f"No deployment parameters file found at '{value}'", param, ctx)
