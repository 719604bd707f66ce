"""
Configuration Management
"""

import os
import copy
import logging
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

logger = logging.getLogger(__name__)

_config_cache: Optional[Dict[str, Any]] = None

DEFAULT_CONFIG: Dict[str, Any] = {
    'llm': {
        'provider': 'groq',
        'timeout_seconds': 60.0,
        'max_retries': 3,
        'backoff_seconds': 2.0,
        'models': {
            'groq': 'llama-3.3-70b-versatile',
            'openai': 'gpt-4-turbo-preview',
            'anthropic': 'claude-3-sonnet-20240229',
            'openrouter': 'meta-llama/llama-3.3-70b-instruct',
        },
    },
    'agents': {
        'debate': {'temperature': 0.7, 'max_tokens': 2000},
        'validator': {'temperature': 0.3, 'max_tokens': 2000},
        'distributor': {'temperature': 0.5, 'max_tokens': 2000},
        'report': {'temperature': 0.4, 'max_tokens': 4000},
        'insights': {'temperature': 0.6, 'max_tokens': 1000},
        'search': {'temperature': 0.3, 'max_tokens': 2000},
        'voice': {'temperature': 0.1, 'max_tokens': 1024, 'provider': 'groq'},
        'charts': {'temperature': 0.7, 'max_tokens': 1000},
        'proscons': {'temperature': 0.7, 'max_tokens': 2000},
        'visualizer': {'temperature': 0.7, 'max_tokens': 2000},
    },
    'flow': {
        'max_rounds': 5,
        'default_agent_limit': 3,
        'max_response_points': 5,
        'validation_keep_threshold': 70,
        'search_context_results': 3,
        'stream_delay_seconds': 0.0,
        'max_workers': 4,
    },
    'search': {
        'provider': 'playwright',
        'timeout_seconds': 15.0,
        'scrapingdog_timeout_seconds': 30.0,
        'playwright_timeout_ms': 30000,
    },
    'subscription': {
        'free_agent_limit': 4,
        'premium_days': 365,
    },
    'billing': {
        'currency': 'INR',
        'total_count': 12,
    },
}


def _merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge overlay into base."""
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_dir: str = "config") -> Dict[str, Any]:
    """Load defaults plus the optional YAML overlay."""
    global _config_cache

    config = copy.deepcopy(DEFAULT_CONFIG)

    provider = os.getenv('AI_PROVIDER')
    if provider:
        config['llm']['provider'] = provider.lower()

    search_provider = os.getenv('SEARCH_PROVIDER')
    if search_provider:
        config['search']['provider'] = search_provider.lower()

    filepath = Path(config_dir) / 'debate.yaml'
    try:
        if filepath.exists():
            with open(filepath, 'r') as f:
                file_config = yaml.safe_load(f)
                if file_config:
                    _merge(config, file_config)
                    logger.info(f"Loaded config overlay from {filepath}")
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not load config files: {e}")

    _config_cache = config
    return config


def reset_config() -> None:
    global _config_cache
    _config_cache = None


def get_config() -> Dict[str, Any]:
    """Get the current configuration."""
    global _config_cache
    if _config_cache is None:
        load_config()
    return _config_cache or {}


def get_llm_config() -> Dict[str, Any]:
    return get_config().get('llm', DEFAULT_CONFIG['llm'])


def get_agent_config(agent_name: str) -> Dict[str, Any]:
    """Get configuration for a specific agent."""
    config = get_config()
    return config.get('agents', {}).get(agent_name, {})


def get_flow_config() -> Dict[str, Any]:
    return get_config().get('flow', DEFAULT_CONFIG['flow'])


def get_search_config() -> Dict[str, Any]:
    return get_config().get('search', DEFAULT_CONFIG['search'])


def get_subscription_config() -> Dict[str, Any]:
    return get_config().get('subscription', DEFAULT_CONFIG['subscription'])


def get_billing_config() -> Dict[str, Any]:
    return get_config().get('billing', DEFAULT_CONFIG['billing'])
