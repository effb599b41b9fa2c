# secufix/publisher.py
import shutil
import logging
from pathlib import Path

from .models import ScanReport

logger = logging.getLogger(__name__)

MAX_BACKUPS = 100


def create_backup(path: Path) -> Path:
    """Copies path to path.bak, or path.bak.N when earlier backups exist."""
    base_backup = path.with_name(path.name + ".bak")
    if not base_backup.exists():
        shutil.copy2(path, base_backup)
        return base_backup
    for counter in range(1, MAX_BACKUPS + 1):
        versioned_backup = path.with_name(f"{base_backup.name}.{counter}")
        if not versioned_backup.exists():
            shutil.copy2(path, versioned_backup)
            return versioned_backup
    raise RuntimeError(f"Too many backup files for {path}")


def apply_updates(report: ScanReport, directory: str | Path | None = None, backup: bool = True) -> list[Path]:
    """
    Writes each file's updated_content back to disk. Files are located by their
    recorded local path, or by name inside directory. Returns the written paths.
    """
    written = []
    for result in report.files:
        if result.updated_content is None:
            continue
        if result.path:
            target = Path(result.path)
        elif directory is not None:
            target = Path(directory) / result.file_name
        else:
            logger.warning(f"No local path known for {result.file_name}, not writing it.")
            continue
        if not target.is_file():
            logger.warning(f"File not found: {target}")
            continue

        if backup:
            backup_path = create_backup(target)
            logger.debug(f"Created backup: {backup_path}")
        target.write_text(result.updated_content, encoding='utf-8')
        upgrades = sum(1 for rec in result.secure_versions if not rec.is_secure)
        logger.info(f"Updated {upgrades} dependencies in {target}")
        written.append(target)
    return written
