"""
Guru — Subject Profile Store
Birth data + consciousness ("atman") summary for each subject.

Stands in for the remote profile store: reads and writes
~/.guru/profiles.json. The nudge engine only ever reads it; the
write side is for whatever feeds the summary (analysis pipeline, setup).
"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from guru.config import CONFIG_DIR

logger = logging.getLogger(__name__)

PROFILES_FILE = CONFIG_DIR / "profiles.json"


class ProfileStore:
    """Manages subject profiles and their atman summaries."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else PROFILES_FILE
        self._cache: Optional[Dict] = None
        self._mtime: Optional[int] = None

    def _disk_mtime(self) -> Optional[int]:
        try:
            return self.path.stat().st_mtime_ns
        except OSError:
            return None

    def _load(self) -> Dict:
        # Other writers (the analysis pipeline) may touch the file between reads
        mtime = self._disk_mtime()
        if self._cache is not None and mtime == self._mtime:
            return self._cache

        self._mtime = mtime
        if mtime is not None:
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                    self._cache = data
                    return data
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Failed to load {self.path.name}: {e}")

        default_data = {"subjects": {}}
        self._cache = default_data
        return default_data

    def _save(self, data: Dict):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            self._cache = data
            self._mtime = self._disk_mtime()
        except IOError as e:
            logger.error(f"Failed to save {self.path.name}: {e}")
            raise

    def _subject(self, subject_id: str) -> Optional[Dict]:
        return self._load().get("subjects", {}).get(subject_id)

    # ── Read side ───────────────────────────────────────────

    def get_profile(self, subject_id: str) -> Optional[Dict]:
        """Return ``{dob, tob, pob, coordinates?, ...}`` or None."""
        subject = self._subject(subject_id)
        if subject is None:
            return None
        return {k: v for k, v in subject.items() if k != "atman"}

    def get_atman(self, subject_id: str) -> Dict:
        """Return the consciousness summary (empty dict if none)."""
        subject = self._subject(subject_id) or {}
        return dict(subject.get("atman") or {})

    def list_subjects(self) -> List[str]:
        return list(self._load().get("subjects", {}).keys())

    # ── Write side ──────────────────────────────────────────

    def update_profile(self, subject_id: str, updates: Dict) -> Dict:
        """Merge ``updates`` into a subject's profile, creating it if needed."""
        data = self._load()
        subjects = data.setdefault("subjects", {})
        subject = subjects.setdefault(subject_id, {"created_at": datetime.now().isoformat()})
        subject.update({k: v for k, v in updates.items() if k != "atman"})
        subject["updated_at"] = datetime.now().isoformat()
        self._save(data)
        logger.info(f"Updated profile {subject_id}: {sorted(updates)}")
        return self.get_profile(subject_id)

    def update_atman(self, subject_id: str, updates: Dict) -> Dict:
        """Merge ``updates`` into a subject's atman summary."""
        data = self._load()
        subjects = data.setdefault("subjects", {})
        subject = subjects.setdefault(subject_id, {"created_at": datetime.now().isoformat()})
        atman = subject.setdefault("atman", {})
        atman.update(updates)
        subject["updated_at"] = datetime.now().isoformat()
        self._save(data)
        return dict(atman)


def birth_data_from(profile: Optional[Dict]) -> Optional[Dict]:
    """Shape a profile into the chart service's birthData, or None if incomplete."""
    if not profile or not profile.get("dob") or not profile.get("tob"):
        return None
    coords = profile.get("coordinates") or {}
    return {
        "dob": profile["dob"],
        "tob": profile["tob"],
        "pob": profile.get("pob") or "Unknown",
        "lat": coords.get("lat"),
        "lng": coords.get("lng"),
    }
