"""Backup file bookkeeping."""

from pathlib import Path
from typing import Optional

import structlog

from flow_finance.audit import AuditLogger
from flow_finance.models.entities import BackupEntry
from flow_finance.services.storage import LedgerStorageInterface, StorageError


logger = structlog.get_logger(__name__)


class BackupActions:
    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()

    async def list_backups(self) -> list[BackupEntry]:
        return await self._storage.list_backup_entries()

    async def delete_backup(self, entry: BackupEntry) -> bool:
        """
        Delete the backup file (if it still exists) and its record.

        Returns:
            False if either step failed
        """
        try:
            path = Path(entry.file_path)
            if path.exists():
                path.unlink()

            removed = await self._storage.delete_backup_entry(entry.id)
        except (OSError, StorageError) as e:
            logger.warning("backup_delete_failed", file_path=entry.file_path, error=str(e))
            return False

        if removed:
            await self._audit.log_backup_deleted(file_path=entry.file_path)
        return removed
