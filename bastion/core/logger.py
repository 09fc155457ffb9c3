"""
Bastion - Logger Module
=======================

Custom tree-style logging with EST timezone and daily rotation.

DESIGN:
    This logger provides structured, hierarchical output that's easy to scan
    during an incident. Tree-style formatting groups the details of a single
    detection or mitigation together, while EST timestamps keep every log
    line on one clock.

    Key features:
    - Tree-style formatting for structured data visualization
    - EST timezone timestamps (auto EST/EDT handling)
    - Daily log rotation in dated folders
    - 7-day log retention with automatic cleanup
    - Session tracking with unique run IDs
    - Discord webhook integration for error alerts
"""

import asyncio
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

import aiohttp


# =============================================================================
# Constants
# =============================================================================

LOGS_DIR = Path("logs")
"""Directory for all log files, organized by date."""

LOG_RETENTION_DAYS = 7
"""Number of days to retain log directories before cleanup."""

NY_TZ = ZoneInfo("America/New_York")
"""Eastern timezone for consistent timestamps."""

Details = Optional[List[Tuple[str, str]]]


# =============================================================================
# Tree Logger Class
# =============================================================================

class TreeLogger:
    """
    Custom logger with tree-style formatting and EST timezone support.

    DESIGN:
        Uses tree-style output (├─ └─) for visual hierarchy.
        All timestamps in Eastern time for consistency.
        Separate error log file for quick troubleshooting.
        Optional webhook notifications for critical errors.

    Attributes:
        run_id: Unique identifier for this bot session.
        log_file: Path to the main log file (None when file output is off).
        error_file: Path to the error-only log file.
    """

    # =========================================================================
    # Initialization
    # =========================================================================

    def __init__(self, to_file: bool = True) -> None:
        """
        Initialize logger with run ID and daily log file.

        Args:
            to_file: Write to dated log files in addition to the console.
        """
        self.run_id: str = str(uuid.uuid4())[:8]
        self._webhook_url: Optional[str] = None
        self.log_file: Optional[Path] = None
        self.error_file: Optional[Path] = None

        if to_file:
            today = datetime.now(NY_TZ).strftime("%Y-%m-%d")
            self.log_dir = LOGS_DIR / today
            self.log_dir.mkdir(parents=True, exist_ok=True)

            self.log_file = self.log_dir / f"Bastion-{today}.log"
            self.error_file = self.log_dir / f"Bastion-Errors-{today}.log"

            self._cleanup_old_logs()
            self._write_session_header()

    def set_webhook(self, url: Optional[str]) -> None:
        """
        Set webhook URL for error notifications.

        Args:
            url: Discord webhook URL for error alerts.
        """
        self._webhook_url = url

    # =========================================================================
    # Log Cleanup
    # =========================================================================

    def _cleanup_old_logs(self) -> None:
        """
        Remove log directories older than retention period.

        Only directories named YYYY-MM-DD are considered.
        """
        if not LOGS_DIR.exists():
            return

        now = datetime.now()
        deleted = 0

        for item in LOGS_DIR.iterdir():
            if not item.is_dir():
                continue
            try:
                dir_date = datetime.strptime(item.name, "%Y-%m-%d")
            except ValueError:
                continue
            if (now - dir_date).days > LOG_RETENTION_DAYS:
                for f in item.iterdir():
                    f.unlink()
                item.rmdir()
                deleted += 1

        if deleted > 0:
            print(f"[LOG CLEANUP] Removed {deleted} old log directories")

    def _write_session_header(self) -> None:
        """Write session start marker to log file."""
        header = f"""
============================================================
NEW SESSION - RUN ID: {self.run_id}
[{datetime.now(NY_TZ).strftime("%I:%M:%S %p %Z")}]
============================================================
"""
        self._append(self.log_file, header)

    # =========================================================================
    # Core Logging
    # =========================================================================

    @staticmethod
    def _append(path: Optional[Path], text: str) -> None:
        if path is None:
            return
        with open(path, "a", encoding="utf-8") as f:
            f.write(text)

    def _get_timestamp(self) -> str:
        """Get current timestamp like "[02:30:45 PM EST]"."""
        return datetime.now(NY_TZ).strftime("[%I:%M:%S %p %Z]")

    def _write(
        self,
        message: str,
        emoji: str = "",
        include_timestamp: bool = True,
        is_error: bool = False,
    ) -> None:
        """
        Write log message to console and file.

        Args:
            message: Log message content.
            emoji: Optional emoji prefix.
            include_timestamp: Whether to prepend timestamp.
            is_error: Whether to also write to error log.
        """
        if include_timestamp:
            timestamp = self._get_timestamp()
            full_message = f"{timestamp} {emoji} {message}" if emoji else f"{timestamp} {message}"
        else:
            full_message = f"{emoji} {message}" if emoji else message

        print(full_message)
        self._append(self.log_file, f"{full_message}\n")
        if is_error:
            self._append(self.error_file, f"{full_message}\n")

    def _write_items(self, items: List[Tuple[str, str]], is_error: bool = False) -> None:
        for i, (key, value) in enumerate(items):
            prefix = "└─" if i == len(items) - 1 else "├─"
            self._write(f"  {prefix} {key}: {value}", include_timestamp=False, is_error=is_error)

    def _leveled(self, msg: str, emoji: str, details: Details, is_error: bool = False) -> None:
        self._write(msg, emoji, is_error=is_error)
        if details:
            self._write_items(details, is_error=is_error)

    # =========================================================================
    # Tree Formatting
    # =========================================================================

    def tree(
        self,
        title: str,
        items: List[Tuple[str, str]],
        emoji: str = "📦",
    ) -> None:
        """
        Log structured data in tree format.

        Args:
            title: Main heading for the tree.
            items: List of (key, value) tuples to display.
            emoji: Emoji prefix for the title.

        Example output:
            [02:30:45 PM EST] 🚨 RAID DETECTED
              ├─ Guild: 1234
              ├─ Count: 10 in 30s
              └─ Action: locked
        """
        self._append(self.log_file, "\n")
        self._write(title, emoji=emoji)
        self._write_items(items)
        self._append(self.log_file, "\n")

    # =========================================================================
    # Log Levels
    # =========================================================================

    def debug(self, msg: str, details: Details = None) -> None:
        """Log debug message (only if DEBUG env var set)."""
        if os.getenv("DEBUG"):
            self._leveled(msg, "🔍", details)

    def info(self, msg: str, details: Details = None) -> None:
        """Log informational message."""
        self._leveled(msg, "ℹ️", details)

    def success(self, msg: str, details: Details = None) -> None:
        """Log success message."""
        self._leveled(msg, "✅", details)

    def warning(self, msg: str, details: Details = None) -> None:
        """Log warning message."""
        self._leveled(msg, "⚠️", details)

    def error(self, msg: str, details: Details = None) -> None:
        """
        Log error message with optional structured details.

        DESIGN:
            Errors with details are also sent to the error webhook when one
            is configured and an event loop is running.
        """
        self._leveled(msg, "❌", details, is_error=True)

        if details and self._webhook_url:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return
            loop.create_task(self._send_webhook_error(msg, details))

    def critical(self, msg: str, details: Details = None) -> None:
        """Log critical error message."""
        self._leveled(msg, "🚨", details, is_error=True)

    # =========================================================================
    # Webhook Integration
    # =========================================================================

    async def _send_webhook_error(
        self,
        title: str,
        details: List[Tuple[str, str]],
    ) -> None:
        """
        Send error notification to Discord webhook.

        Args:
            title: Error title for the embed.
            details: List of (key, value) detail tuples.
        """
        if not self._webhook_url:
            return

        description = "\n".join(f"**{k}:** {v}" for k, v in details)
        payload = {
            "embeds": [{
                "title": f"❌ {title}",
                "description": description,
                "color": 0xFF0000,
                "timestamp": datetime.now(NY_TZ).isoformat(),
                "footer": {"text": f"Run ID: {self.run_id}"},
            }]
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self._webhook_url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=10),
                ) as resp:
                    if resp.status != 204:
                        print(f"Webhook error: {resp.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            print(f"Failed to send webhook: {e}")


# =============================================================================
# Global Instance
# =============================================================================

logger = TreeLogger(to_file=os.getenv("BASTION_LOG_TO_FILE", "1") != "0")
"""
Global logger instance for use throughout the application.

DESIGN:
    Single instance created at module import time.
    All modules import and use this same instance.
"""


__all__ = [
    "logger",
    "TreeLogger",
    "NY_TZ",
]
