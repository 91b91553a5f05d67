from pathlib import Path


def _item_path(item) -> Path:
    # pytest >= 7 exposes item.path; older versions only item.fspath
    p = getattr(item, "path", None)
    return Path(p) if p is not None else Path(str(getattr(item, "fspath")))


def mark_by_dir(items, base_dir, marker):
    """Attach ``marker`` to every collected item living under ``base_dir``."""
    base = Path(base_dir).resolve()
    for item in items:
        try:
            _item_path(item).resolve().relative_to(base)
        except ValueError:
            continue
        item.add_marker(marker)
