from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable

from pelakor.core.api import ApiClient, ApiError
from pelakor.core.schemas import (
    DisposisiHistory,
    Laporan,
    TindakLanjutHistory,
    disposisi_list,
    tindak_lanjut_list,
)
from pelakor.core.workflow import StatusLaporan, parse_status
from pelakor.utils.dates import parse_datetime

logger = logging.getLogger("pelakor.laporan")


def newest_first(items: Iterable[Laporan]) -> list[Laporan]:
    def _key(lap: Laporan):
        dt = parse_datetime(lap.created_at)
        return (dt.timestamp() if dt else 0.0, lap.id_laporan)

    return sorted(items, key=_key, reverse=True)


def filter_laporan(items: Iterable[Laporan], status: str | None = None, q: str | None = None) -> list[Laporan]:
    """Status filter plus case-insensitive search over title, body and category."""
    st = parse_status(status) if status else None
    needle = (q or "").strip().lower()
    out: list[Laporan] = []
    for lap in items:
        if st is not None and parse_status(lap.status_laporan) != st:
            continue
        if needle:
            haystack = " ".join(x or "" for x in (lap.judul_laporan, lap.isi_laporan, lap.kategori)).lower()
            if needle not in haystack:
                continue
        out.append(lap)
    return out


def status_counts(items: Iterable[Laporan]) -> dict[str, int]:
    counts = {s.value: 0 for s in StatusLaporan}
    total = 0
    for lap in items:
        total += 1
        st = parse_status(lap.status_laporan)
        if st is not None:
            counts[st.value] += 1
    counts["total"] = total
    return counts


def history_or_empty(label: str, fn: Callable[[Any], Any], laporan_id: Any) -> Any:
    """Call one history endpoint; failures other than an expired session read as []."""
    try:
        return fn(laporan_id)
    except ApiError as exc:
        if exc.status == 401:
            raise
        logger.warning("%s history unavailable laporan=%s status=%s: %s", label, laporan_id, exc.status, exc.message)
        return []


def load_histories(api: ApiClient, laporan_id: Any) -> tuple[list[DisposisiHistory], list[TindakLanjutHistory]]:
    """Fetch both histories of a report concurrently; each one falls back to []."""
    with ThreadPoolExecutor(max_workers=2) as pool:
        disp = pool.submit(history_or_empty, "disposisi", api.get_disposisi_history, laporan_id)
        tl = pool.submit(history_or_empty, "tindak lanjut", api.get_tindak_lanjut_history, laporan_id)
        return disposisi_list(disp.result()), tindak_lanjut_list(tl.result())
