"""Blockchain oracle collaborators (submission contract only)."""
from .oracle_client import DryRunOracleClient, OracleClient, RelayerOracleClient, build_oracle_client

__all__ = ["OracleClient", "RelayerOracleClient", "DryRunOracleClient", "build_oracle_client"]
