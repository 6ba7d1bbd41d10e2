"""
Configuration utilities for ProviderConfidence.

Provides configuration loading and validation for the scoring engine,
the re-verification policy and the recalculation pipeline.
"""

import logging
import yaml
from typing import Dict, Any
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/provider_confidence.yaml"


def get_default_confidence_config() -> Dict[str, Any]:
    """
    Get default ProviderConfidence configuration.

    Returns:
        Default configuration dictionary
    """
    return {
        "schema": {
            "required_columns": ["provider_npi", "plan_id"]
        },
        "scoring": {
            "thresholds": {
                "needs_verification": 75,
                "not_accepted_uncertain": 50
            }
        },
        "reverification": {
            "baseline_days": 90
        },
        "aggregate": {
            "min_score_threshold": 50,
            "average_score_threshold": 60
        },
        "recalculation": {
            "batch_size": 100,
            "min_verifications": 1
        },
        "audit": {
            "db_path": "data/score_changes.db"
        }
    }


def load_confidence_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration from YAML file, merged over the defaults.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary
    """
    defaults = get_default_confidence_config()

    try:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.warning(f"Configuration file {config_path} not found, using defaults")
            return defaults

        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}

        logger.info(f"Loaded confidence configuration from {config_path}")
        return merge_configs(defaults, config)

    except yaml.YAMLError as e:
        logger.error(f"Failed to load configuration from {config_path}: {e}")
        return defaults


def validate_confidence_config(config: Dict[str, Any]) -> bool:
    """
    Validate ProviderConfidence configuration.

    Args:
        config: Configuration dictionary

    Returns:
        True if configuration is valid, False otherwise
    """
    required_sections = ["scoring", "reverification", "aggregate", "recalculation"]

    for section in required_sections:
        if section not in config:
            logger.error(f"Missing required configuration section: {section}")
            return False

    thresholds = config["scoring"].get("thresholds", {})
    for key in ("needs_verification", "not_accepted_uncertain"):
        value = thresholds.get(key, 0)
        if not isinstance(value, (int, float)) or not 0 <= value <= 100:
            logger.error(f"scoring.thresholds.{key} must be a number between 0 and 100")
            return False

    baseline_days = config["reverification"].get("baseline_days", 90)
    if not isinstance(baseline_days, (int, float)) or baseline_days <= 0:
        logger.error("reverification.baseline_days must be a positive number")
        return False

    for key in ("min_score_threshold", "average_score_threshold"):
        value = config["aggregate"].get(key, 0)
        if not isinstance(value, (int, float)) or not 0 <= value <= 100:
            logger.error(f"aggregate.{key} must be a number between 0 and 100")
            return False

    batch_size = config["recalculation"].get("batch_size", 100)
    if not isinstance(batch_size, int) or batch_size <= 0:
        logger.error("recalculation.batch_size must be a positive integer")
        return False

    logger.info("Configuration validation passed")
    return True


def merge_configs(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge two configuration dictionaries.

    Args:
        base_config: Base configuration
        override_config: Override configuration

    Returns:
        Merged configuration
    """
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged
