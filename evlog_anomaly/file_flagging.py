"""
MAC-time flagging: attach every file whose access, modify or create time
falls strictly inside an incident's anomalous interval to that incident.
"""

import logging
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from .anomaly import AnomalyCollection
from .events import FileRef

logger = logging.getLogger(__name__)


@dataclass
class MacTimes:
    atime: int
    mtime: int
    crtime: int

    def values(self) -> tuple[int, int, int]:
        return self.atime, self.mtime, self.crtime


def mac_times_for(st: os.stat_result) -> MacTimes:
    """
    crtime is st_birthtime where the platform has it. Otherwise (e.g. Linux)
    it falls back to st_ctime, which is the inode change time, not creation.
    """
    crtime = getattr(st, "st_birthtime", None)
    if crtime is None:
        crtime = st.st_ctime
    return MacTimes(int(st.st_atime), int(st.st_mtime), int(crtime))


def falls_inside(times: MacTimes, collection: AnomalyCollection) -> bool:
    """True if any MAC time is strictly inside the anchor's anomalous interval on either axis."""
    for axis in ("created", "written"):
        start, end = collection.anchor.anomaly_interval(axis)
        if any(start < t < end for t in times.values()):
            return True
    return False


def iter_files(roots: Iterable[Path | str], follow_symlinks: bool = False) -> Iterator[Path]:
    for root in roots:
        root = Path(root)
        if root.is_file():
            yield root
            continue
        for dirpath, dirnames, filenames in os.walk(root, followlinks=follow_symlinks):
            dirnames.sort()
            for name in sorted(filenames):
                yield Path(dirpath) / name


def flag_entry(ref: FileRef, times: MacTimes, collections: list[AnomalyCollection]) -> int:
    """Attach `ref` to every matching collection; returns the match count."""
    hits = 0
    for collection in collections:
        if falls_inside(times, collection):
            collection.add_file(ref)
            hits += 1
    return hits


def flag_files(
    roots: Iterable[Path | str],
    collections: list[AnomalyCollection],
    follow_symlinks: bool = False,
) -> int:
    """Walk the roots and flag files against every collection. Returns the number of attachments."""
    if not collections:
        return 0
    total = 0
    for path in iter_files(roots, follow_symlinks):
        try:
            st = path.stat() if follow_symlinks else path.lstat()
        except OSError as e:
            logger.warning("Cannot stat %s: %s", path, e)
            continue
        ref = FileRef(path=str(path.parent) + os.sep, name=path.name)
        total += flag_entry(ref, mac_times_for(st), collections)
    logger.info("Flagged %d file/incident matches", total)
    return total
