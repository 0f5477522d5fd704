"""Data models for the nesdb game database compiler."""

from .config import AppConfig
from .game import CompiledDatabase, GameInfo, GameRecord, Mirroring, NesRegion, ScanOutcome

__all__ = [
    "AppConfig",
    "CompiledDatabase",
    "GameInfo",
    "GameRecord",
    "Mirroring",
    "NesRegion",
    "ScanOutcome",
]
