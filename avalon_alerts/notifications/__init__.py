"""Alert delivery."""

from .telegram import TelegramConfig, TelegramNotifier

__all__ = ["TelegramConfig", "TelegramNotifier"]
