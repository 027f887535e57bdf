"""
Configuration loader for the Cost Control Engine.

Loads settings from cost_engine_config.yaml and provides typed access
to all configuration sections.
"""
from pathlib import Path
from typing import Any, Dict, Optional
from functools import lru_cache

import yaml


# Default config shipped inside the package
DEFAULT_CONFIG_PATH = Path(__file__).parent / "cost_engine_config.yaml"


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""
    pass


class CostEngineConfig:
    """
    Configuration manager for the Cost Control Engine.

    Loads YAML configuration and provides typed access to all sections.
    Use get_config() to obtain the singleton instance; services also accept
    an explicit instance.
    """

    def __init__(self, config_path: Optional[Path] = None, overrides: Optional[dict] = None):
        self._config_path = config_path or DEFAULT_CONFIG_PATH
        self._config: dict = {}
        self._load()
        if overrides:
            self._config = _deep_merge(self._config, overrides)

    def _load(self) -> None:
        """Load configuration from YAML file."""
        if not self._config_path.exists():
            raise ConfigurationError(f"Config file not found: {self._config_path}")

        try:
            with open(self._config_path, 'r') as f:
                self._config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self._config, dict):
            raise ConfigurationError("Config file must contain a YAML mapping")

    @classmethod
    def from_dict(cls, overrides: dict) -> 'CostEngineConfig':
        """Default configuration with selected values overridden."""
        return cls(overrides=overrides)

    @property
    def version(self) -> str:
        """Configuration file version."""
        return self._config.get("version", "unknown")

    # =========================================================================
    # Ledger
    # =========================================================================

    @property
    def default_currency(self) -> str:
        return self._config.get("ledger", {}).get("default_currency", "USD")

    # =========================================================================
    # Variance
    # =========================================================================

    @property
    def variance(self) -> dict:
        return self._config.get("variance", {})

    @property
    def minor_variance_threshold(self) -> float:
        return float(self.variance.get("minor_threshold", 5.0))

    @property
    def significant_variance_threshold(self) -> float:
        return float(self.variance.get("significant_threshold", 15.0))

    # =========================================================================
    # Forecasting
    # =========================================================================

    @property
    def forecasting(self) -> dict:
        return self._config.get("forecasting", {})

    @property
    def forecast_weights(self) -> Dict[str, float]:
        """Combiner weights by forecaster name."""
        weights = {"historical": 1.0, "progress": 1.0, "trend": 1.0}
        weights.update(self.forecasting.get("weights", {}))
        for name, weight in weights.items():
            if float(weight) < 0:
                raise ConfigurationError(f"Forecast weight for '{name}' must be non-negative")
        return {name: float(weight) for name, weight in weights.items()}

    @property
    def period_days(self) -> int:
        days = int(self.forecasting.get("period_days", 7))
        if days <= 0:
            raise ConfigurationError("forecasting.period_days must be positive")
        return days

    @property
    def trend_window_periods(self) -> int:
        return max(1, int(self.forecasting.get("trend_window_periods", 4)))

    @property
    def recency_half_life_days(self) -> float:
        return float(self.forecasting.get("recency_half_life_days", 30))

    # =========================================================================
    # Alerts
    # =========================================================================

    @property
    def alerts(self) -> dict:
        return self._config.get("alerts", {})

    @property
    def anomaly_multiplier(self) -> float:
        return float(self.alerts.get("anomaly", {}).get("multiplier", 2.0))

    @property
    def anomaly_window(self) -> int:
        return max(1, int(self.alerts.get("anomaly", {}).get("window", 5)))

    @property
    def anomaly_min_history(self) -> int:
        return max(1, int(self.alerts.get("anomaly", {}).get("min_history", 3)))

    @property
    def trend_snapshot_count(self) -> int:
        return max(2, int(self.alerts.get("trend", {}).get("snapshot_count", 3)))

    @property
    def trend_min_latest_percentage(self) -> float:
        return float(self.alerts.get("trend", {}).get("min_latest_percentage", -10.0))

    @property
    def severity_bands(self) -> Dict[str, int]:
        bands = {"critical": 50, "high": 15, "medium": 5}
        bands.update(self.alerts.get("severity_bands", {}))
        return {name: int(value) for name, value in bands.items()}

    def get_severity(self, priority: int) -> str:
        """
        Get severity name for a priority score.

        Args:
            priority: Priority between 0 and 100

        Returns:
            'critical', 'high', 'medium' or 'low'
        """
        bands = self.severity_bands
        if priority >= bands["critical"]:
            return "critical"
        elif priority >= bands["high"]:
            return "high"
        elif priority >= bands["medium"]:
            return "medium"
        else:
            return "low"

    # =========================================================================
    # Optimization
    # =========================================================================

    @property
    def optimization(self) -> dict:
        return self._config.get("optimization", {})

    @property
    def efficiency_threshold(self) -> float:
        return float(self.optimization.get("efficiency_threshold", 1.0))

    @property
    def severe_efficiency_threshold(self) -> float:
        return float(self.optimization.get("severe_efficiency_threshold", 0.7))

    def get_category_strategy(self, category: str) -> str:
        """Recommendation type for a category name (case-insensitive)."""
        strategies = self.optimization.get("category_strategies", {})
        return strategies.get(
            category.lower(),
            self.optimization.get("default_strategy", "vendor_renegotiation"),
        )

    def get_recovery_factor(self, recommendation_type: str) -> float:
        factors = self.optimization.get("recovery_factors", {})
        return float(factors.get(recommendation_type, 0.0))

    def get_status_feasibility(self, status: str) -> float:
        feasibility = self.optimization.get("status_feasibility", {})
        return float(feasibility.get(status, 0.0))

    # =========================================================================
    # Control Strategy
    # =========================================================================

    @property
    def control(self) -> dict:
        return self._config.get("control", {})

    @property
    def monitoring_cadence_days(self) -> int:
        days = int(self.control.get("monitoring_cadence_days", 7))
        if days <= 0:
            raise ConfigurationError("control.monitoring_cadence_days must be positive")
        return days

    @property
    def warning_ratio(self) -> float:
        return float(self.control.get("warning_ratio", 0.9))

    # =========================================================================
    # Scheduler
    # =========================================================================

    @property
    def forecast_refresh_schedule(self) -> dict:
        schedule = self._config.get("scheduler", {}).get("forecast_refresh", {})
        return {"hour": int(schedule.get("hour", 2)), "minute": int(schedule.get("minute", 0))}

    # =========================================================================
    # Raw Access
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """Get a top-level config value by key."""
        return self._config.get(key, default)

    def __getitem__(self, key: str) -> Any:
        """Dictionary-style access to config."""
        return self._config[key]

    def __contains__(self, key: str) -> bool:
        """Check if key exists in config."""
        return key in self._config


def _deep_merge(base: dict, overrides: dict) -> dict:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@lru_cache(maxsize=1)
def get_config(config_path: Optional[str] = None) -> CostEngineConfig:
    """
    Get the singleton configuration instance.

    Args:
        config_path: Optional path to config file. Only used on first call.

    Returns:
        CostEngineConfig singleton instance
    """
    path = Path(config_path) if config_path else None
    return CostEngineConfig(path)


def reload_config() -> CostEngineConfig:
    """Reload configuration from disk and return new instance."""
    get_config.cache_clear()
    return get_config()
