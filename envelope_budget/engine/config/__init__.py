"""Engine configuration files and loaders.

Engine constants (tolerances, bands, iteration caps) and suggestion texts are
stored in JSON files so they can be tuned without code changes.
"""

from .defaults import get_config_value, get_constant, get_engine_config, load_config

__all__ = ['load_config', 'get_engine_config', 'get_constant', 'get_config_value']
