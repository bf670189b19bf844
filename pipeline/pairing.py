"""
Naming rules that decide a file's kind and its pairing key.

Takeout writes one `<media name>.json` sidecar per media file. Newer exports
insert a `.supplemental-metadata` tail before `.json`, which is truncated when
the full name would exceed the export's length limit, and duplicate names get
their counter right before `.json` (`IMG.jpg(1).json` describes `IMG(1).jpg`).
"""

import os
from pathlib import PurePosixPath
import re
from models.base import FileKind

SIDECAR_SUFFIX = ".json"


def _prefix_alternation(word: str) -> str:
    """`abc` -> `abc|ab|a`, longest first"""
    return "|".join(re.escape(word[:size]) for size in range(len(word), 0, -1))


_SUPPLEMENTAL_TAIL_RE = re.compile(
    rf"\.(?:{_prefix_alternation('supplemental')})"
    rf"(?:-(?:{_prefix_alternation('metadata')})?)?$",
    re.IGNORECASE,
)
_TRAILING_COUNTER_RE = re.compile(r"\((\d+)\)$")


def kind_for_name(name: str) -> FileKind:
    """Files whose name denotes sidecar metadata are sidecars, all others media."""
    if name.lower().endswith(SIDECAR_SUFFIX):
        return FileKind.SIDECAR
    return FileKind.MEDIA


def pairing_key(name: str, kind: FileKind = None) -> str:
    """
    Name with its pairing suffix stripped.
    
    Media files are their own key. For sidecars the `.json` suffix and any
    supplemental-metadata tail are removed and a duplicate counter is moved
    back in front of the media extension.
    
    Examples:
        >>> pairing_key("a.jpg.json")
        'a.jpg'
        >>> pairing_key("a.jpg.supplemental-metadata.json")
        'a.jpg'
        >>> pairing_key("a.jpg(1).json")
        'a(1).jpg'
    """
    kind = kind or kind_for_name(name)
    if kind is FileKind.MEDIA:
        return name
    
    core = name[: -len(SIDECAR_SUFFIX)] if name.lower().endswith(SIDECAR_SUFFIX) else name
    
    counter = None
    match = _TRAILING_COUNTER_RE.search(core)
    if match:
        counter = match.group(1)
        core = core[: match.start()]
    
    core = _SUPPLEMENTAL_TAIL_RE.sub("", core)
    
    if counter is not None:
        stem, extension = os.path.splitext(core)
        core = f"{stem}({counter}){extension}"
    return core


def scoped_pairing_key(entry_path: str, kind: FileKind = None) -> str:
    """
    Pairing key qualified by the entry's folder inside the archive.
    
    Takeout always writes a sidecar next to its media, while equal file
    names recur across album folders of one archive.
    
    Examples:
        >>> scoped_pairing_key("Takeout/Google Photos/Trip/a.jpg.json")
        'Takeout/Google Photos/Trip/a.jpg'
    """
    path = PurePosixPath(entry_path.replace("\\", "/"))
    key = pairing_key(path.name, kind)
    if str(path.parent) in ("", "."):
        return key
    return str(path.parent / key)
