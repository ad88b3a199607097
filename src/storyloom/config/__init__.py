"""配置。"""

from storyloom.config.settings import EngineConfig, load_config

__all__ = ["EngineConfig", "load_config"]
