"""Configuration loading for capture-bridge."""

from .settings import BridgeConfig, load_config, load_settings, save_settings


__all__ = ["BridgeConfig", "load_config", "load_settings", "save_settings"]
