"""
Runtime configuration for bracket progression.

Values come from the environment (a local .env file is honored). Services take an
explicit ProgressionSettings so tests can run with non-default values.
"""
import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

BYE_MODE_STRUCTURAL = "structural"
BYE_MODE_LEGACY_TBD = "legacy_tbd"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def _split_csv(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class ProgressionSettings:
    bye_detection_mode: str = BYE_MODE_STRUCTURAL
    max_retries: int = 3
    terminal_rounds: Tuple[str, ...] = ("Final", "Group Stage")
    walkover_winner_score: Tuple[int, ...] = (21, 0, 0)
    walkover_loser_score: Tuple[int, ...] = (0, 0, 0)

    def __post_init__(self):
        if self.bye_detection_mode not in (BYE_MODE_STRUCTURAL, BYE_MODE_LEGACY_TBD):
            raise ValueError(f"Unknown BYE_DETECTION_MODE: {self.bye_detection_mode}")
        if self.max_retries < 1:
            raise ValueError("PROPAGATION_MAX_RETRIES must be >= 1")

    @property
    def legacy_byes(self) -> bool:
        return self.bye_detection_mode == BYE_MODE_LEGACY_TBD

    @classmethod
    def from_env(cls) -> "ProgressionSettings":
        terminal = _split_csv(os.getenv("TERMINAL_ROUNDS", "Final,Group Stage"))
        return cls(
            bye_detection_mode=os.getenv("BYE_DETECTION_MODE", BYE_MODE_STRUCTURAL).strip().lower(),
            max_retries=int(os.getenv("PROPAGATION_MAX_RETRIES", "3")),
            terminal_rounds=terminal or ("Final", "Group Stage"),
        )


_settings: Optional[ProgressionSettings] = None


def get_settings() -> ProgressionSettings:
    global _settings
    if _settings is None:
        _settings = ProgressionSettings.from_env()
    return _settings
