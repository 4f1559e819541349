#!/usr/bin/env python3
"""Wallet balance alarms for the disputer and liquidator bots.

An alarm reads live financial contract state, derives the balance a bot
wallet needs to cover its open positions, and compares it with the
observed balance. Shortfalls are logged as warnings on every check; a
healthy status is logged at most once per ``info_log_interval``.
"""

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from fractions import Fraction
from typing import Any, Protocol

from ..config import BalanceAlarmConfig
from ..utils.chain_reader import ChainReader

FIXED_POINT_SCALE = 10**18


class AlarmStatus(Enum):
    WARN = "warn"
    HEALTHY = "healthy"


@dataclass(frozen=True, slots=True)
class BalanceCheck:
    """Outcome of one balance check, per asset."""
    status: AlarmStatus
    targets: Mapping[str, int]
    observed: Mapping[str, int]

    @property
    def target_balance(self) -> int:
        """Target of the first (for single-asset alarms, the only) asset."""
        return next(iter(self.targets.values()))


class PositionSource(Protocol):
    def get_all_positions(self) -> Sequence[Any]: ...


def unwrap_fixed_point(value: Any) -> int:
    """Contract getters return FixedPoint structs as ``(rawValue,)``."""
    if isinstance(value, (tuple, list)):
        value = value[0]
    elif isinstance(value, Mapping):
        value = value["rawValue"]
    return int(value)


class BalanceAlarm(ABC):
    """Base class handling counting, throttling and logging for alarms."""

    AT = "WalletBalanceAlarm"

    def __init__(
        self,
        financial_contract: ChainReader,
        position_source: PositionSource,
        polling_delay: int,
        info_log_interval: int = 86400,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize the alarm.

        Args:
            financial_contract: Reader for the financial contract
            position_source: Provides the currently open positions
            polling_delay: Seconds between two checks
            info_log_interval: Seconds between two healthy-status logs
            logger: Logger to use, defaults to this module's logger
        """
        self.financial_contract = financial_contract
        self.position_source = position_source
        self.polling_delay = polling_delay
        self.info_log_interval = info_log_interval
        self.logger = logger or logging.getLogger(__name__)

        self.num_of_open_positions = 0
        self.time_since_last_info_log = 0

    @classmethod
    def from_config(
        cls,
        financial_contract: ChainReader,
        position_source: PositionSource,
        config: BalanceAlarmConfig,
        logger: logging.Logger | None = None,
        **kwargs: Any,
    ) -> "BalanceAlarm":
        return cls(
            financial_contract,
            position_source,
            config.polling_delay,
            info_log_interval=config.info_log_interval,
            logger=logger,
            **kwargs,
        )

    def update_num_of_open_positions(self) -> None:
        self.num_of_open_positions = len(self.position_source.get_all_positions())

    @abstractmethod
    async def calculate_targets(self) -> dict[str, int]:
        """Target balance per asset name."""

    def _context(self) -> dict[str, Any]:
        """Extra structured fields attached to every log record."""
        return {"numOfOpenPositions": self.num_of_open_positions}

    async def _check(self, observed: Mapping[str, int]) -> BalanceCheck:
        try:
            self.update_num_of_open_positions()
            targets = await self.calculate_targets()

            warned = False
            for asset, target in targets.items():
                if observed[asset] < target:
                    warned = True
                    self.logger.warning(
                        f"Bot wallet balance is {observed[asset]} {asset} which is below the "
                        f"target wallet balance threshold of {target} {asset}. "
                        "Replenish bot wallet balance immediately",
                        extra={"at": self.AT, **self._context(), "asset": asset,
                               "currentBalance": observed[asset], "targetBalance": target},
                    )

            if not warned and self.time_since_last_info_log >= self.info_log_interval:
                self.time_since_last_info_log = 0
                summary = ", ".join(f"{observed[asset]} {asset}" for asset in targets)
                thresholds = ", ".join(f"{target} {asset}" for asset, target in targets.items())
                self.logger.info(
                    f"Current bot wallet balance of {summary} meets the target wallet "
                    f"balance threshold of {thresholds}. Bot wallet balance is within the healthy range",
                    extra={"at": self.AT, **self._context()},
                )

            self.time_since_last_info_log += self.polling_delay

            return BalanceCheck(
                status=AlarmStatus.WARN if warned else AlarmStatus.HEALTHY,
                targets=targets,
                observed=dict(observed),
            )
        except Exception as e:
            self.logger.error(
                f"An error occurred during the calculation of the bot wallet balance: {e}",
                extra={"at": self.AT},
                exc_info=True,
            )
            raise


class DisputerBalanceAlarm(BalanceAlarm):
    """Collateral needed to post dispute bonds on every open position."""

    AT = "Disputer#WalletBalanceAlarm"

    def __init__(self, *args: Any, buffer_percentage: Decimal | str | int = 1, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.buffer_percentage = Fraction(str(buffer_percentage))
        self.total_collateral_amount = 0
        self.dispute_bond_percentage = 0

    @classmethod
    def from_config(
        cls,
        financial_contract: ChainReader,
        position_source: PositionSource,
        config: BalanceAlarmConfig,
        logger: logging.Logger | None = None,
        **kwargs: Any,
    ) -> "DisputerBalanceAlarm":
        kwargs.setdefault("buffer_percentage", config.buffer_percentage)
        return super().from_config(financial_contract, position_source, config, logger=logger, **kwargs)

    def _context(self) -> dict[str, Any]:
        return {
            **super()._context(),
            "totalCollateralAmount": self.total_collateral_amount,
            "disputeBondPercentage": self.dispute_bond_percentage,
        }

    async def calculate_targets(self) -> dict[str, int]:
        self.total_collateral_amount = unwrap_fixed_point(
            await self.financial_contract.call("totalPositionCollateral")
        )
        oo_reward = unwrap_fixed_point(await self.financial_contract.call("ooReward"))
        self.dispute_bond_percentage = unwrap_fixed_point(
            await self.financial_contract.call("disputeBondPercentage")
        )

        target = (
            Fraction(self.total_collateral_amount * self.dispute_bond_percentage, FIXED_POINT_SCALE)
            + self.num_of_open_positions * self.buffer_percentage * oo_reward
        )
        return {"collateral": math.ceil(target)}

    async def check(self, collateral_balance: int) -> BalanceCheck:
        return await self._check({"collateral": collateral_balance})


class LiquidatorBalanceAlarm(BalanceAlarm):
    """Synthetic tokens and collateral needed to liquidate every open position."""

    AT = "Liquidator#WalletBalanceAlarm"

    def __init__(self, *args: Any, min_sponsor_tokens: int, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.min_sponsor_tokens = int(min_sponsor_tokens)
        self.oo_reward = 0

    def _context(self) -> dict[str, Any]:
        return {
            **super()._context(),
            "minSponsorTokens": self.min_sponsor_tokens,
            "ooReward": self.oo_reward,
        }

    async def calculate_targets(self) -> dict[str, int]:
        self.oo_reward = unwrap_fixed_point(await self.financial_contract.call("ooReward"))
        return {
            "synthetic": self.min_sponsor_tokens * self.num_of_open_positions,
            "collateral": self.num_of_open_positions * self.oo_reward,
        }

    async def check(self, synthetic_balance: int, collateral_balance: int) -> BalanceCheck:
        return await self._check({"synthetic": synthetic_balance, "collateral": collateral_balance})


class WalletBalanceAlarm(BalanceAlarm):
    """Synthetic tokens needed to liquidate every open position.

    Logs the healthy status on every check.
    """

    AT = "Liquidator#WalletBalanceAlarm"

    def __init__(self, *args: Any, min_sponsor_tokens: int, **kwargs: Any):
        kwargs.setdefault("info_log_interval", 0)
        super().__init__(*args, **kwargs)
        self.min_sponsor_tokens = int(min_sponsor_tokens)

    async def calculate_targets(self) -> dict[str, int]:
        return {"synthetic": self.min_sponsor_tokens * self.num_of_open_positions}

    async def check(self, synthetic_balance: int) -> BalanceCheck:
        return await self._check({"synthetic": synthetic_balance})
