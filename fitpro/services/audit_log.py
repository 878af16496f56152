"""
Append-only audit trail for admin subscription overrides.

One JSON object per line, written after the admin action has been committed.
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

ACTION_GRANT = "grant_subscription"
ACTION_REVOKE = "revoke_subscription"


class AdminAuditLog:
    """Line-delimited JSON log of admin actions."""

    def __init__(self, path):
        self.path = Path(path)

    def record(
        self,
        action: str,
        admin_id: Optional[int],
        admin_email: Optional[str],
        target_user_id: int,
        subscription_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Append one audit entry.

        A failed write is logged rather than raised: the admin action it
        describes has already been committed.

        Returns:
            The entry that was (or would have been) written
        """
        entry: Dict[str, Any] = {
            "action": action,
            "adminId": admin_id,
            "adminEmail": admin_email,
            "targetUserId": target_user_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if subscription_id is not None:
            entry["subscriptionId"] = subscription_id

        logger.info(f"Admin action: {entry}")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry) + "\n")
        except OSError as e:
            logger.error(f"Failed to write admin audit log {self.path}: {e}")
        return entry

    def read_entries(self) -> List[Dict[str, Any]]:
        """Return every entry in write order; empty if the log does not exist yet."""
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as fh:
            return [json.loads(line) for line in fh if line.strip()]
