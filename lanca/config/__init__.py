from .loader import build_config, load_engine_config, load_yaml, validate_payload
from .schema import (
    BPS_DENOMINATOR,
    SCORE_SCALE,
    ChainConfig,
    EngineConfig,
    FeeConfig,
    LoadedConfig,
    PoolConfig,
    ScoringConfig,
)

__all__ = [
    "BPS_DENOMINATOR",
    "SCORE_SCALE",
    "ChainConfig",
    "EngineConfig",
    "FeeConfig",
    "LoadedConfig",
    "PoolConfig",
    "ScoringConfig",
    "build_config",
    "load_engine_config",
    "load_yaml",
    "validate_payload",
]
