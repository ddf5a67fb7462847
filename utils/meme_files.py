"""
Meme directory helpers
Scanning, random picks, stats and search over the memes folder.

Example usage:
    from utils.meme_files import scan_templates, pick_random

    templates = scan_templates(Path("../assets/memes"))
    name = pick_random([t["name"] for t in templates])
"""

import logging
import random
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple, Type

ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "gif"}
MAX_RANDOM_COUNT = 50

logger = logging.getLogger("meme_server.files")


class MemeDirectoryError(Exception):
    """The memes directory exists but could not be read."""

    def __init__(self, directory: Path, cause: Exception):
        self.directory = directory
        self.cause = cause
        super().__init__(f"Cannot read memes directory {directory}: {cause}")


def skip_on_error(action: Callable[..., Any], *args,
                  default: Any = None,
                  errors: Tuple[Type[BaseException], ...] = (OSError,),
                  label: str = "") -> Any:
    """
    Run `action(*args)` and return `default` if it raises one of `errors`.

    Anything not listed in `errors` propagates. Used wherever a single bad
    file should be left out instead of failing the whole request.
    """
    try:
        return action(*args)
    except errors as e:
        logger.debug("Skipping %s: %s", label or getattr(action, "__name__", "action"), e)
        return default


def file_extension(name: str) -> str:
    """Lower-cased extension without the dot, or '' if there is none."""
    return Path(name).suffix.lower().lstrip(".")


def is_template_name(name: str) -> bool:
    return file_extension(name) in ALLOWED_EXTENSIONS


def normalize_type(ext: str) -> str:
    """jpg and jpeg are the same type as far as stats are concerned."""
    ext = ext.lower()
    return "jpeg" if ext == "jpg" else ext


def is_inside(base: Path, path: Path) -> bool:
    """True if resolved `path` lies strictly below resolved `base`."""
    return base in path.parents


def list_template_files(memes_dir: Path) -> List[Path]:
    """
    Return paths of every allowed image file directly inside `memes_dir`.

    A missing directory means there are no templates. Any other failure
    reading the directory raises MemeDirectoryError. Entries that resolve
    outside the directory (symlinks pointing elsewhere) are left out.
    """
    memes_dir = Path(memes_dir)
    try:
        entries = list(memes_dir.iterdir())
    except FileNotFoundError:
        logger.warning("Memes directory not found: %s", memes_dir)
        return []
    except OSError as e:
        raise MemeDirectoryError(memes_dir, e) from e

    base = memes_dir.resolve()
    files = []
    for p in entries:
        if not is_template_name(p.name):
            continue
        resolved = skip_on_error(p.resolve, errors=(OSError, RuntimeError), label=p.name)
        if resolved is None or not is_inside(base, resolved):
            logger.warning("Skipping %s: resolves outside %s", p.name, base)
            continue
        if not skip_on_error(p.is_file, default=False, label=p.name):
            continue
        files.append(p)
    return sorted(files, key=lambda p: p.name)


def list_template_names(memes_dir: Path) -> List[str]:
    return [p.name for p in list_template_files(memes_dir)]


def _format_mtime(mtime: float) -> str:
    return datetime.fromtimestamp(int(mtime), tz=timezone.utc).isoformat()


def template_info(path: Path) -> Dict[str, Any]:
    """Build the listing entry for one file. Raises OSError if stat fails."""
    st = path.stat()
    return {
        "name": path.name,
        "path": str(path),
        "size_bytes": st.st_size,
        "file_type": file_extension(path.name),
        "last_modified": _format_mtime(st.st_mtime),
    }


def scan_templates(memes_dir: Path) -> List[Dict[str, Any]]:
    """List every template with metadata. Files whose stat fails are left out."""
    templates = []
    for p in list_template_files(memes_dir):
        info = skip_on_error(template_info, p, label=f"metadata for {p.name}")
        if info is not None:
            templates.append(info)
    return templates


def search_templates(memes_dir: Path, term: str) -> Tuple[str, List[Dict[str, Any]]]:
    """
    Case-insensitive substring search over template names.

    Returns the lower-cased term together with the matching entries.
    """
    query = term.lower()
    matches = [t for t in scan_templates(memes_dir) if query in t["name"].lower()]
    return query, matches


def pick_random(names: List[str], rng=random) -> str:
    """Pick one name uniformly at random. `names` must not be empty."""
    return names[rng.randrange(len(names))]


def pick_many(names: List[str], count: int, rng=random) -> List[str]:
    """Independent draws; the same name can come up more than once."""
    return [pick_random(names, rng) for _ in range(count)]


def compute_stats(memes_dir: Path) -> Dict[str, Any]:
    stats: Dict[str, Any] = {
        "total_memes": 0,
        "total_size_bytes": 0,
        "average_file_size": 0,
        "largest_file_name": "",
        "largest_file_size": 0,
        "smallest_file_name": "",
        "smallest_file_size": 0,
        "file_types": {},
    }

    for p in list_template_files(memes_dir):
        stats["total_memes"] += 1

        st = skip_on_error(p.stat, label=f"size of {p.name}")
        if st is not None:
            size = st.st_size
            stats["total_size_bytes"] += size

            if size > stats["largest_file_size"]:
                stats["largest_file_size"] = size
                stats["largest_file_name"] = p.name

            # 0 doubles as "not set yet", so a zero-byte file never sticks as the minimum
            if stats["smallest_file_size"] == 0 or size < stats["smallest_file_size"]:
                stats["smallest_file_size"] = size
                stats["smallest_file_name"] = p.name

        kind = normalize_type(file_extension(p.name))
        stats["file_types"][kind] = stats["file_types"].get(kind, 0) + 1

    if stats["total_memes"] > 0:
        stats["average_file_size"] = stats["total_size_bytes"] // stats["total_memes"]

    return stats
