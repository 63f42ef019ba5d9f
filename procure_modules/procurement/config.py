"""
Procurement Configuration Schema.

Defines the structure and sensible defaults for procurement settings.
Values may be overridden from a dict or a YAML file:

    tax_rate: "0.18"
    lock_timeout_seconds: 5
    report_freshness_seconds: 60
    prefixes:
      requisition: REQ
      purchase_order: PO
      goods_receipt: GRN
"""

from dataclasses import dataclass, fields
from decimal import Decimal
from pathlib import Path
from typing import Any, Self

import yaml

from procure_engines.totals import DEFAULT_TAX_RATE
from procure_kernel.db.types import to_decimal
from procure_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.config")


@dataclass(frozen=True)
class ProcurementConfig:
    """
    Configuration schema for the procurement module.

    Raises ``ValueError`` at construction for out-of-range values.
    """

    # Purchase orders
    tax_rate: Decimal = DEFAULT_TAX_RATE
    require_active_vendor: bool = True
    default_unit: str = "pcs"

    # Concurrency
    lock_timeout_seconds: float = 10.0

    # Reporting; 0 disables caching
    report_freshness_seconds: int = 0

    # Document number prefixes
    requisition_prefix: str = "REQ"
    purchase_order_prefix: str = "PO"
    goods_receipt_prefix: str = "GRN"

    def __post_init__(self):
        if not isinstance(self.tax_rate, Decimal):
            object.__setattr__(self, "tax_rate", to_decimal(self.tax_rate))
        if not Decimal("0") <= self.tax_rate < Decimal("1"):
            raise ValueError(f"tax_rate must be in [0, 1), got {self.tax_rate}")
        if self.lock_timeout_seconds <= 0:
            raise ValueError(
                f"lock_timeout_seconds must be positive, got {self.lock_timeout_seconds}"
            )
        if self.report_freshness_seconds < 0:
            raise ValueError(
                "report_freshness_seconds cannot be negative, "
                f"got {self.report_freshness_seconds}"
            )
        for name in ("requisition_prefix", "purchase_order_prefix", "goods_receipt_prefix"):
            prefix = getattr(self, name)
            if not prefix or not prefix.isalnum():
                raise ValueError(f"{name} must be a non-empty alphanumeric string")
        if not self.default_unit:
            raise ValueError("default_unit cannot be empty")

        logger.info(
            "procurement_config_initialized",
            extra={
                "tax_rate": str(self.tax_rate),
                "lock_timeout_seconds": self.lock_timeout_seconds,
                "report_freshness_seconds": self.report_freshness_seconds,
                "require_active_vendor": self.require_active_vendor,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard defaults (18% tax, no report cache)."""
        logger.info("procurement_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a dictionary (e.g. parsed YAML)."""
        logger.info(
            "procurement_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        prefixes = data.pop("prefixes", None) or {}
        for key, value in prefixes.items():
            data[f"{key}_prefix"] = value

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown procurement config keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """
        Load config from a YAML file.

        A top-level ``procurement:`` section is used when present.

        Raises:
            FileNotFoundError: the file does not exist.
            yaml.YAMLError: the file is not valid YAML.
            ValueError: unknown keys or invalid values.
        """
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Expected a mapping in {path}")
        section = raw.get("procurement", raw)
        return cls.from_dict(section)
