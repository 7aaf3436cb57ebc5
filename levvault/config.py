"""
config.py - Immutable vault configuration

VaultConfig is validated once at construction and never changes afterwards.
Leverage is WAD-scaled: 2x is 2e18.

    max_leverage = WAD * WAD / (WAD - max_ltv)

so an 80% LTV market supports up to 5x.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

from .core import (
    BPS, DEFAULT_MAX_SLIPPAGE_BPS, DEFAULT_PRICING_DENOMINATION, DEFAULT_REBALANCE_BAND_BPS, WAD,
    ConfigurationError,
    mul_div_down, wad,
)


def _to_decimal(value: Any, name: str) -> Decimal:
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except ArithmeticError as exc:
        raise ConfigurationError(f"{name} is not a number: {value!r}") from exc


def _require_id(value: Optional[str], name: str) -> None:
    if not value or not str(value).strip():
        raise ConfigurationError(f"{name} cannot be empty")


def calculate_max_leverage(max_ltv: Decimal) -> Decimal:
    """
    Highest leverage a market with max_ltv (WAD-scaled) can carry.

    Raises:
        ConfigurationError: If max_ltv is outside [0, WAD)
    """
    if max_ltv < 0 or max_ltv >= WAD:
        raise ConfigurationError(f"max_ltv must be in [0, {WAD}), got {max_ltv}")
    return mul_div_down(WAD, WAD, WAD - max_ltv)


@dataclass(frozen=True, slots=True)
class VaultConfig:
    """
    Attributes:
        collateral_token: Symbol of the collateral asset (also the deposit asset)
        debt_token: Symbol of the borrowed asset
        target_leverage: WAD-scaled target, at least 1x
        share_symbol: Symbol of the vault share unit
        share_name: Human-readable share name
        account: Ledger wallet holding the vault's position
        pricing_denomination: Common currency for the price cross-rate
        rebalance_band_bps: Drift tolerated before rebalancing. With 0 every
            drift is chased, so a second rebalance() can still act on a few
            base units of rounding residue; repeat calls are no-ops only
            for a band above zero
        max_slippage_bps: Allowed swap shortfall against the oracle rate; also
            bounds the extra collateral a decrease may sell to cover swap fees
        keeper: Only caller allowed to rebalance; None lets anyone rebalance
    """
    collateral_token: str
    debt_token: str
    target_leverage: Decimal
    share_symbol: str
    share_name: str = "Leveraged Vault Share"
    account: str = "vault"
    pricing_denomination: str = DEFAULT_PRICING_DENOMINATION
    rebalance_band_bps: Decimal = DEFAULT_REBALANCE_BAND_BPS
    max_slippage_bps: Decimal = DEFAULT_MAX_SLIPPAGE_BPS
    keeper: Optional[str] = None

    def __post_init__(self):
        _require_id(self.collateral_token, "collateral_token")
        _require_id(self.debt_token, "debt_token")
        _require_id(self.share_symbol, "share_symbol")
        _require_id(self.account, "account")
        _require_id(self.pricing_denomination, "pricing_denomination")
        if self.collateral_token == self.debt_token:
            raise ConfigurationError("collateral_token and debt_token must differ")
        if self.share_symbol in (self.collateral_token, self.debt_token):
            raise ConfigurationError(f"share_symbol {self.share_symbol} clashes with an asset symbol")

        target = _to_decimal(self.target_leverage, "target_leverage")
        band = _to_decimal(self.rebalance_band_bps, "rebalance_band_bps")
        slippage = _to_decimal(self.max_slippage_bps, "max_slippage_bps")
        # frozen dataclass: coerce through object.__setattr__
        object.__setattr__(self, "target_leverage", target)
        object.__setattr__(self, "rebalance_band_bps", band)
        object.__setattr__(self, "max_slippage_bps", slippage)

        if target != target.to_integral_value():
            raise ConfigurationError(f"target_leverage must be WAD-scaled, got {target}")
        if target < WAD:
            raise ConfigurationError(f"target_leverage {target} is below 1x ({WAD})")
        if band < 0 or band >= BPS:
            raise ConfigurationError(f"rebalance_band_bps must be in [0, {BPS}), got {band}")
        if slippage < 0 or slippage >= BPS:
            raise ConfigurationError(f"max_slippage_bps must be in [0, {BPS}), got {slippage}")

    @property
    def target_multiple(self) -> Decimal:
        return self.target_leverage / WAD

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "VaultConfig":
        """
        Build a config from a plain dict.

        The target is read from 'target_leverage' (WAD-scaled) or
        'target_multiple' (e.g. 2 or "1.5"); exactly one must be given.

        Raises:
            ConfigurationError: On missing, conflicting or unknown keys
        """
        params = dict(data)
        if "target_leverage" in params and "target_multiple" in params:
            raise ConfigurationError("Give either target_leverage or target_multiple, not both")
        if "target_multiple" in params:
            params["target_leverage"] = wad(params.pop("target_multiple"))
        known = set(cls.__dataclass_fields__)
        unknown = set(params) - known
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {sorted(unknown)}")
        missing = {"collateral_token", "debt_token", "target_leverage", "share_symbol"} - set(params)
        if missing:
            raise ConfigurationError(f"Missing config keys: {sorted(missing)}")
        return cls(**params)
