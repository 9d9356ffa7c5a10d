"""Protocol parameters and environment configuration.

Protocol constants live in ``config/dao_params.json``. Runtime locations
(data directory, config directory, log level) come from the process
environment, optionally seeded from a ``.env`` file at the project root.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from daohub.models.governance import BASIS_POINTS


ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_DIR = ROOT / "config"
DEFAULT_DATA_DIR = ROOT / "data"
PARAMS_FILENAME = "dao_params.json"

# Flat weight granted by join_directly, independent of any real balance.
DIRECT_JOIN_VOTING_POWER = 1_000_000
# Quorum denominator used by finalization.
REFERENCE_TOTAL_SUPPLY = 1_000_000
DEFAULT_VOTING_PERIOD = 1440
DEFAULT_QUORUM_BP = 2000
DEFAULT_MAJORITY_BP = 5000


@dataclass(frozen=True)
class DaoConfig:
    """Protocol constants shared by every organization."""

    direct_join_voting_power: int = DIRECT_JOIN_VOTING_POWER
    reference_total_supply: int = REFERENCE_TOTAL_SUPPLY
    default_voting_period: int = DEFAULT_VOTING_PERIOD
    default_quorum_bp: int = DEFAULT_QUORUM_BP
    default_majority_bp: int = DEFAULT_MAJORITY_BP

    def __post_init__(self) -> None:
        if self.direct_join_voting_power <= 0:
            raise ValueError("direct_join_voting_power must be > 0")
        if self.reference_total_supply <= 0:
            raise ValueError("reference_total_supply must be > 0")
        if self.default_voting_period <= 0:
            raise ValueError("default_voting_period must be > 0")
        for label, bp in (
            ("default_quorum_bp", self.default_quorum_bp),
            ("default_majority_bp", self.default_majority_bp),
        ):
            if not 0 <= bp <= BASIS_POINTS:
                raise ValueError(f"{label} must be within [0, {BASIS_POINTS}]")

    @classmethod
    def defaults(cls) -> DaoConfig:
        return cls()

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> DaoConfig:
        """Build from the parsed contents of dao_params.json.

        Missing sections fall back to the built-in defaults.
        """
        membership = params.get("membership", {})
        finalization = params.get("finalization", {})
        settings = params.get("settings_defaults", {})
        return cls(
            direct_join_voting_power=membership.get(
                "direct_join_voting_power", DIRECT_JOIN_VOTING_POWER
            ),
            reference_total_supply=finalization.get(
                "reference_total_supply", REFERENCE_TOTAL_SUPPLY
            ),
            default_voting_period=settings.get(
                "voting_period", DEFAULT_VOTING_PERIOD
            ),
            default_quorum_bp=settings.get("quorum_bp", DEFAULT_QUORUM_BP),
            default_majority_bp=settings.get("majority_bp", DEFAULT_MAJORITY_BP),
        )

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> DaoConfig:
        """Load from ``<config_dir>/dao_params.json``.

        Raises:
            FileNotFoundError: If the parameter file is absent.
            ValueError: If a parameter is out of range.
        """
        path = Path(config_dir) / PARAMS_FILENAME
        with path.open("r", encoding="utf-8") as handle:
            return cls.from_params(json.load(handle))


@dataclass(frozen=True)
class RuntimeEnvironment:
    """Process-level locations and verbosity."""
    config_dir: Path
    data_dir: Path
    log_level: str


def load_environment(
    root: Path = ROOT,
    environ: Optional[dict[str, str]] = None,
) -> RuntimeEnvironment:
    """Load ``<root>/.env`` (if present) and resolve runtime settings.

    Recognised variables:
        DAOHUB_CONFIG_DIR  - parameter directory (default: config/)
        DAOHUB_DATA_DIR    - state and event log directory (default: data/)
        DAOHUB_LOG_LEVEL   - stdlib logging level name (default: WARNING)
    """
    if environ is None:
        load_dotenv(root / ".env")
        environ = dict(os.environ)
    return RuntimeEnvironment(
        config_dir=Path(environ.get("DAOHUB_CONFIG_DIR", str(DEFAULT_CONFIG_DIR))),
        data_dir=Path(environ.get("DAOHUB_DATA_DIR", str(DEFAULT_DATA_DIR))),
        log_level=environ.get("DAOHUB_LOG_LEVEL", "WARNING").upper(),
    )
