from datetime import UTC, datetime
import logging
import os
from pathlib import Path

from rankflow.errors import DirectoryError
from rankflow.schemas import LocatedFile, ValidationReport
from rankflow.taxonomy import IMAGE_EXTENSIONS, Category, is_period_name, period_number


logger = logging.getLogger(__name__)


def _subdirectories(path: Path) -> list[Path]:
    return sorted((entry for entry in path.iterdir() if entry.is_dir()), key=lambda entry: entry.name)


def _select_period_dir(root: Path) -> Path | None:
    if is_period_name(root.name):
        return root

    candidates = [entry for entry in _subdirectories(root) if is_period_name(entry.name)]
    if not candidates:
        return None
    # Highest week number wins; equal numbers fall back to the lexically first name.
    return min(candidates, key=lambda entry: (-period_number(entry.name), entry.name))


def _category_dirs(period_dir: Path) -> list[tuple[Category, Path]]:
    matched: list[tuple[Category, Path]] = []
    for entry in _subdirectories(period_dir):
        category = Category.parse(entry.name)
        if category.is_known:
            matched.append((category, entry))
    matched.sort(key=lambda item: item[0].order)
    return matched


def _image_files(category_dir: Path) -> list[Path]:
    images = [
        entry
        for entry in category_dir.iterdir()
        if entry.is_file() and entry.suffix.lower() in IMAGE_EXTENSIONS
    ]
    return sorted(images, key=lambda entry: entry.name)


def _created_at(stats: os.stat_result) -> datetime:
    timestamp = getattr(stats, "st_birthtime", None) or stats.st_ctime
    return datetime.fromtimestamp(timestamp, UTC)


def resolve_files(root_path: str | Path) -> list[LocatedFile]:
    root = Path(root_path).expanduser().absolute()
    if not root.exists():
        raise DirectoryError(f"base directory does not exist: {root}")
    if not root.is_dir():
        raise DirectoryError(f"base path is not a directory: {root}")

    try:
        period_dir = _select_period_dir(root)
        if period_dir is None:
            raise DirectoryError(f"no week directory found under {root}")

        category_dirs = _category_dirs(period_dir)
        if not category_dirs:
            raise DirectoryError(f"no day directories found in {period_dir.name}")

        located: list[LocatedFile] = []
        for category, category_dir in category_dirs:
            for image in _image_files(category_dir):
                stats = image.stat()
                located.append(
                    LocatedFile(
                        category=category.label,
                        period=period_dir.name,
                        file_name=image.name,
                        path=image,
                        size=stats.st_size,
                        created_at=_created_at(stats),
                    )
                )
    except OSError as exc:
        raise DirectoryError(f"failed to scan {root}: {exc}") from exc

    logger.info(
        "screenshots resolved",
        extra={"period": period_dir.name, "categories": len(category_dirs), "files": len(located)},
    )
    return located


def validate_directory_structure(root_path: str | Path) -> ValidationReport:
    root = Path(root_path).expanduser().absolute()
    if not root.exists():
        return ValidationReport.from_issues([f"Base directory does not exist: {root_path}"])

    issues: list[str] = []
    try:
        period_dir = _select_period_dir(root) if root.is_dir() else None
        if period_dir is None:
            return ValidationReport.from_issues(["No week directories found"])

        category_dirs = _category_dirs(period_dir)
        if not category_dirs:
            issues.append(f"No day directories found in {period_dir.name}")

        for _, category_dir in category_dirs:
            if not _image_files(category_dir):
                issues.append(f"No image files found in {period_dir.name}/{category_dir.name}")
    except OSError as exc:
        raise DirectoryError(f"failed to read {root}: {exc}") from exc

    return ValidationReport.from_issues(issues)
