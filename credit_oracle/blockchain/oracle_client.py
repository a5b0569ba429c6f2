"""
Clients for publishing scores to the on-chain oracle contract.

Transaction encoding, signing and gas handling live behind a relayer; this
side only knows the request/response contract: submit (address, score,
confidence, data hash) and get back a transaction reference.
"""
import hashlib
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import requests

from credit_oracle.core.exceptions import PublishError

logger = logging.getLogger(__name__)

ORACLE_RELAYER_URL = os.getenv("ORACLE_RELAYER_URL", "http://localhost:8090")


class OracleClient(ABC):
    @abstractmethod
    def submit(self, address: str, score: int, confidence: int, data_hash: str) -> str:
        """Submit a score; return the transaction reference or raise PublishError."""
        raise NotImplementedError

    @abstractmethod
    def health_check(self) -> None:
        """Return None when the oracle is reachable, raise PublishError otherwise."""
        raise NotImplementedError


class RelayerOracleClient(OracleClient):
    """Client for a signing relayer that owns the oracle updater key."""

    def __init__(
        self,
        relayer_url: Optional[str] = None,
        contract_address: str = "",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.relayer_url = (relayer_url or ORACLE_RELAYER_URL).rstrip("/")
        self.contract_address = contract_address
        self.timeout = timeout
        self.session = session or requests.Session()

    def submit(self, address: str, score: int, confidence: int, data_hash: str) -> str:
        payload = {
            "contract_address": self.contract_address,
            "user_address": address,
            "score": score,
            "confidence": confidence,
            "data_hash": data_hash,
        }
        try:
            response = self.session.post(
                f"{self.relayer_url}/v1/credit-scores", json=payload, timeout=self.timeout
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.RequestException as e:
            raise PublishError(f"relayer rejected score update for {address}", e)
        except ValueError as e:
            raise PublishError("relayer returned invalid JSON", e)

        if not isinstance(result, dict):
            raise PublishError(f"relayer returned unexpected response for {address}: {result!r}")
        tx_hash = result.get("tx_hash")
        if not tx_hash:
            raise PublishError(f"relayer response missing tx_hash: {result.get('error') or result}")
        logger.info(f"Submitted score {score} for {address}: tx={tx_hash}")
        return tx_hash

    def health_check(self) -> None:
        try:
            response = self.session.get(f"{self.relayer_url}/health", timeout=5)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise PublishError("oracle relayer unreachable", e)


class DryRunOracleClient(OracleClient):
    """Logs submissions and returns a deterministic pseudo transaction hash."""

    def submit(self, address: str, score: int, confidence: int, data_hash: str) -> str:
        message = f"{address}:{score}:{confidence}:{data_hash}"
        tx_hash = "0x" + hashlib.sha256(message.encode("utf-8")).hexdigest()
        logger.info(f"[dry-run] would publish score {score} ({confidence}%) for {address}")
        return tx_hash

    def health_check(self) -> None:
        return None


def build_oracle_client(settings) -> OracleClient:
    if settings.oracle_relayer_url:
        return RelayerOracleClient(settings.oracle_relayer_url, settings.contract_address)
    logger.warning("ORACLE_RELAYER_URL not set; publishing in dry-run mode")
    return DryRunOracleClient()
