from .balance_alarm import (
    AlarmStatus,
    BalanceAlarm,
    BalanceCheck,
    DisputerBalanceAlarm,
    LiquidatorBalanceAlarm,
    WalletBalanceAlarm,
)

__all__ = [
    "AlarmStatus",
    "BalanceAlarm",
    "BalanceCheck",
    "DisputerBalanceAlarm",
    "LiquidatorBalanceAlarm",
    "WalletBalanceAlarm",
]
