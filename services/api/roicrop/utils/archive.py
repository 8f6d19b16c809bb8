import io, os, zipfile
from datetime import datetime, timezone

ROI_PREFIX = "roi_"

def roi_filename(original_name: str) -> str:
    return f"{ROI_PREFIX}{original_name}"

def archive_filename(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"roi_images_{now.date().isoformat()}.zip"

def unique_name(name: str, taken: set[str]) -> str:
    if name not in taken:
        return name
    stem, ext = os.path.splitext(name)
    n = 1
    while f"{stem} ({n}){ext}" in taken:
        n += 1
    return f"{stem} ({n}){ext}"

def build_zip(entries: list[tuple[str, bytes]]) -> bytes:
    """Pack (name, data) pairs into one zip; repeated names are disambiguated."""
    buf = io.BytesIO()
    taken: set[str] = set()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries:
            name = unique_name(name, taken)
            taken.add(name)
            zf.writestr(name, data)
    return buf.getvalue()
