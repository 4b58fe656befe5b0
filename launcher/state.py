"""
State Store - durable key-value document for everything that must survive a restart.

Keys written by the launcher:
  positions            list of position dicts (registry)
  total_invested       float (treasury ledger)
  total_earned         float (treasury ledger)
  last_deploy_at       float epoch seconds (cooldown)
  performance_history  rolling list of daily review records
  pending_payout       float creator split awaiting retry
  credited_transfers   list of fee transfer references already counted
  wallet               generated wallet credential (encrypted)

Load once on start, save on every mutation. Writes are atomic
(temp file + os.replace) so a crash mid-write never corrupts the file.
"""

import os
import json
import time
import logging
import tempfile
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("launcher.state")


class StateStore:

    def __init__(self, path: str = "data/launcher_state.json"):
        self.path = Path(path)
        self._data: dict[str, Any] = {}
        self.loaded: bool = False
        self.quarantined: Optional[Path] = None
        self.read_only: bool = False

    def load(self) -> bool:
        """
        Read the state file. Returns True if state was loaded,
        False if no file exists or it could not be parsed.

        An unparseable file is renamed to <name>.corrupt-<unix ts> before
        anything else can write, so a stored wallet key inside it is never
        overwritten. If the rename fails, saving stays disabled.
        """
        if not self.path.exists():
            logger.info(f"No state file at {self.path} - starting fresh")
            return False
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected object, got {type(data).__name__}")
            self._data = data
            self.loaded = True
            logger.info(f"State loaded from {self.path} ({len(self._data)} keys)")
            return True
        except Exception as e:
            logger.error(f"Failed to load state from {self.path}: {e}")
            self._quarantine()
            return False

    def _quarantine(self):
        backup = self.path.with_name(f"{self.path.name}.corrupt-{int(time.time())}")
        try:
            os.replace(str(self.path), str(backup))
        except OSError as e:
            self.read_only = True
            logger.error(f"Could not move unreadable state aside ({e}) - refusing to overwrite {self.path}")
            return
        self.quarantined = backup
        logger.error(f"Unreadable state moved to {backup} - recover it by hand before deleting")

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any, save: bool = True):
        self._data[key] = value
        if save:
            self.save()

    def update(self, values: dict[str, Any]):
        """Set several keys with a single write."""
        self._data.update(values)
        self.save()

    def snapshot(self) -> dict[str, Any]:
        return dict(self._data)

    def save(self) -> bool:
        """
        Atomic write: temp file in the same directory, then rename.
        In-memory state stays authoritative if the disk write fails;
        the next mutation retries the write.
        """
        if self.read_only:
            logger.error(f"Not saving state: {self.path} is unreadable and could not be moved aside")
            return False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = dict(self._data)
            payload["saved_at"] = time.time()

            tmp_fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), suffix=".tmp", prefix="launcher_state_"
            )
            try:
                with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, str(self.path))
            except Exception:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise
            return True
        except Exception as e:
            logger.error(f"Failed to save state to {self.path}: {e}")
            return False
