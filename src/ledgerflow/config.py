"""Configuration management.

All configuration keys and defaults live here. Values come from an optional
YAML file and may be overridden by environment variables:

- LEDGERFLOW_DB_PATH
- LEDGERFLOW_LOG_LEVEL
- LEDGERFLOW_USER
- LEDGERFLOW_SCORER_ENABLED (true/false)
- LEDGERFLOW_SCORER_MODEL
- LEDGERFLOW_SCORER_TIMEOUT (seconds)
- LEDGERFLOW_SCORER_DAILY_LIMIT
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG_PATH = Path.home() / ".ledgerflow" / "config.yaml"


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class ImportSettings:
    """Schema inference and reconciliation settings."""

    # Rows sampled per column during inference
    sample_size: int = 10
    # A column is classified only above this combined score
    column_threshold: float = 0.3
    # A field is assigned only above this score
    field_threshold: float = 0.5
    # Debit/credit layouts need header evidence above this score
    debit_credit_header_threshold: float = 0.5
    # Near-duplicate window (days)
    near_duplicate_days: int = 1
    # Largest split remainder folded into the last split
    split_tolerance: Decimal = Decimal("0.05")


@dataclass
class ScorerSettings:
    """External categorization scorer settings."""

    enabled: bool = False
    model: str = "gpt-4o-mini"
    timeout_seconds: float = 20.0
    daily_limit: int = 50
    # Scorer suggestions below this confidence are dropped
    min_confidence: float = 0.5


@dataclass
class Config:
    """Application configuration."""

    db_path: Optional[Path] = None
    log_level: str = "WARNING"
    default_user: str = "default"
    imports: ImportSettings = field(default_factory=ImportSettings)
    scorer: ScorerSettings = field(default_factory=ScorerSettings)

    def validate(self) -> list[str]:
        """Validate configuration consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not self.default_user:
            errors.append("default_user must not be empty")
        if not 0 < self.imports.field_threshold <= 1:
            errors.append("import.field_threshold must be in (0, 1]")
        if self.imports.column_threshold > self.imports.field_threshold:
            errors.append("import.column_threshold must be <= import.field_threshold")
        if self.imports.near_duplicate_days < 0:
            errors.append("import.near_duplicate_days must be >= 0")
        if self.imports.split_tolerance < 0:
            errors.append("import.split_tolerance must be >= 0")
        if self.scorer.timeout_seconds <= 0:
            errors.append("scorer.timeout_seconds must be > 0")
        if self.scorer.daily_limit < 0:
            errors.append("scorer.daily_limit must be >= 0")

        return errors


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name, "").strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from a YAML file, then apply environment overrides.

    Args:
        config_path: Path to the YAML file. If None, uses LEDGERFLOW_CONFIG or
            ~/.ledgerflow/config.yaml. A missing file yields defaults.

    Returns:
        Config instance

    Raises:
        ConfigValidationError: If the file is not a YAML mapping or a value has
            the wrong type
    """
    if config_path is None:
        env_path = os.environ.get("LEDGERFLOW_CONFIG")
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH

    data = {}
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{config_path} must contain a YAML mapping")

    try:
        import_data = data.get("import", {}) or {}
        imports = ImportSettings(
            sample_size=int(import_data.get("sample_size", 10)),
            column_threshold=float(import_data.get("column_threshold", 0.3)),
            field_threshold=float(import_data.get("field_threshold", 0.5)),
            debit_credit_header_threshold=float(
                import_data.get("debit_credit_header_threshold", 0.5)
            ),
            near_duplicate_days=int(import_data.get("near_duplicate_days", 1)),
            split_tolerance=Decimal(str(import_data.get("split_tolerance", "0.05"))),
        )

        scorer_data = data.get("scorer", {}) or {}
        scorer = ScorerSettings(
            enabled=_env_bool("LEDGERFLOW_SCORER_ENABLED", bool(scorer_data.get("enabled", False))),
            model=os.environ.get("LEDGERFLOW_SCORER_MODEL", scorer_data.get("model", "gpt-4o-mini")),
            timeout_seconds=float(
                os.environ.get("LEDGERFLOW_SCORER_TIMEOUT", scorer_data.get("timeout_seconds", 20.0))
            ),
            daily_limit=int(
                os.environ.get("LEDGERFLOW_SCORER_DAILY_LIMIT", scorer_data.get("daily_limit", 50))
            ),
            min_confidence=float(scorer_data.get("min_confidence", 0.5)),
        )
    except (TypeError, ValueError, ArithmeticError) as e:
        raise ConfigValidationError(f"Invalid value in {config_path}: {e}") from e

    db_path = os.environ.get("LEDGERFLOW_DB_PATH", data.get("db_path"))

    return Config(
        db_path=Path(db_path).expanduser() if db_path else None,
        log_level=os.environ.get("LEDGERFLOW_LOG_LEVEL", data.get("log_level", "WARNING")),
        default_user=os.environ.get("LEDGERFLOW_USER", data.get("default_user", "default")),
        imports=imports,
        scorer=scorer,
    )
