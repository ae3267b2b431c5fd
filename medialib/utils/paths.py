# medialib/utils/paths.py
import re
import uuid

_SLUG_RE = re.compile(r"[^a-z0-9]+")

def slugify(label: str) -> str:
    slug = _SLUG_RE.sub("-", label.strip().lower()).strip("-")
    if not slug:
        raise ValueError(f"Label {label!r} has no usable characters")
    return slug

def _ext(ext: str) -> str:
    return ext if ext.startswith(".") else f".{ext}"

def original_path(prefix: str, ext: str, token: str | None = None, external: bool = False) -> str:
    """Storage path for an original; a fresh token is used unless one is given."""
    token = token or uuid.uuid4().hex
    folder = f"{prefix}/external" if external else prefix
    return f"{folder}/{token}{_ext(ext).lower()}"

def variant_dir(prefix: str, asset_id: str) -> str:
    if not asset_id or "/" in asset_id or asset_id in (".", ".."):
        raise ValueError(f"Invalid asset id {asset_id!r}")
    return f"{prefix}/{asset_id}"

def variant_path(prefix: str, asset_id: str, label: str, width: int, height: int, ext: str) -> str:
    """Same inputs, same path: regenerating a variant overwrites it."""
    return f"{variant_dir(prefix, asset_id)}/{slugify(label)}_{int(width)}x{int(height)}{_ext(ext).lower()}"

def public_url(path: str, url_prefix: str) -> str:
    if path.startswith("http://") or path.startswith("https://"):
        return path
    return f"{url_prefix.rstrip('/')}/{path.lstrip('/')}"
