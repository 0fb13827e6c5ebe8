"""
Runtime Config Builder - VNC session settings to container environment
"""

import secrets
from dataclasses import replace
from typing import Dict, Tuple

from .entities import RuntimeConfig


# 12 bytes = 96 bits of entropy, 24 hex characters
PASSWORD_BYTES = 12


def generate_password() -> str:
    """Generate a fresh random VNC password."""
    return secrets.token_hex(PASSWORD_BYTES)


def resolve_runtime_config(
    requested: RuntimeConfig,
    defaults: RuntimeConfig,
) -> RuntimeConfig:
    """Fill every empty field of ``requested`` from ``defaults``."""
    return replace(
        requested,
        password=requested.password or defaults.password or generate_password(),
        resolution=requested.resolution or defaults.resolution,
        col_depth=requested.col_depth or defaults.col_depth,
        view_only=requested.view_only or defaults.view_only,
        display=requested.display or defaults.display,
    )


def build_runtime_env(
    requested: RuntimeConfig,
    defaults: RuntimeConfig,
) -> Tuple[Dict[str, str], str]:
    """
    Build the container environment for a VNC session.
    
    Args:
        requested: Possibly partial config supplied with the request
        defaults: Process-wide default config
        
    Returns:
        Tuple of (environment variables, resolved password). Fields that
        are still empty after merging produce no variable at all.
    """
    config = resolve_runtime_config(requested, defaults)
    
    env = {"VNC_PW": config.password}
    if config.resolution:
        env["VNC_RESOLUTION"] = config.resolution
    if config.col_depth:
        env["VNC_COL_DEPTH"] = str(config.col_depth)
    if config.display:
        env["DISPLAY"] = config.display
    if config.view_only:
        env["VNC_VIEW_ONLY"] = "true"
    
    return env, config.password
