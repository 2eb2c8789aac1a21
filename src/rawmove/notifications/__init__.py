__all__ = ["TelegramNotifier", "format_report"]

from rawmove.notifications.telegram import TelegramNotifier, format_report
