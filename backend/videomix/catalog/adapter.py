"""
Clip catalog adapters.

The catalog is a read-only view over a project's clips, groups and mix
settings. The storage layer that owns them is outside this service; these
adapters are the narrow interface it is consumed through.

Implementations:
- InMemoryCatalog: projects registered in-process (tests, embedding)
- ManifestCatalog: one JSON manifest per project in a directory
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import CatalogError, DuplicateMembershipError, ProjectNotFoundError
from .models import Clip, Group

logger = logging.getLogger(__name__)


class ClipCatalog(ABC):
    """Read-only access to a project's clips and groups."""

    @abstractmethod
    def list_clips(self, project_id: str) -> List[Clip]:
        """Return every clip of the project in upload order."""
        ...

    @abstractmethod
    def list_groups(self, project_id: str) -> List[Group]:
        """Return the project's groups with their ordered membership."""
        ...


class SettingsSource(ABC):
    """Access to the raw mix settings stored for a project."""

    @abstractmethod
    def get_settings(self, project_id: str) -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class ProjectMaterial:
    """Clips of one project split into groups and ungrouped clips."""

    groups: Tuple[Group, ...]
    ungrouped: Tuple[Clip, ...]

    @property
    def clip_count(self) -> int:
        return sum(len(group.clips) for group in self.groups) + len(self.ungrouped)


def load_project_material(catalog: ClipCatalog, project_id: str) -> ProjectMaterial:
    """
    Fetch groups and ungrouped clips for a project.

    Groups are returned sorted by display order (ties by id).

    Raises:
        DuplicateMembershipError: If a clip appears in more than one group
    """
    groups = sorted(catalog.list_groups(project_id), key=lambda g: (g.order, g.id))
    owner: Dict[str, str] = {}
    for group in groups:
        for clip in group.clips:
            if clip.id in owner:
                raise DuplicateMembershipError(clip.id, owner[clip.id], group.id)
            owner[clip.id] = group.id

    ungrouped = tuple(clip for clip in catalog.list_clips(project_id) if clip.id not in owner)
    return ProjectMaterial(groups=tuple(groups), ungrouped=ungrouped)


class InMemoryCatalog(ClipCatalog, SettingsSource):
    """
    In-process catalog.

    Thread-safe: projects may be registered while jobs read them.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._clips: Dict[str, List[Clip]] = {}
        self._groups: Dict[str, List[Group]] = {}
        self._settings: Dict[str, Dict[str, Any]] = {}

    def add_project(
        self,
        project_id: str,
        clips: List[Clip],
        groups: Optional[List[Group]] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> None:
        with self._lock:
            self._clips[project_id] = list(clips)
            self._groups[project_id] = list(groups or [])
            self._settings[project_id] = dict(settings or {})

    def set_settings(self, project_id: str, settings: Dict[str, Any]) -> None:
        with self._lock:
            if project_id not in self._clips:
                raise ProjectNotFoundError(project_id)
            self._settings[project_id] = dict(settings)

    def list_clips(self, project_id: str) -> List[Clip]:
        with self._lock:
            if project_id not in self._clips:
                raise ProjectNotFoundError(project_id)
            return list(self._clips[project_id])

    def list_groups(self, project_id: str) -> List[Group]:
        with self._lock:
            if project_id not in self._groups:
                raise ProjectNotFoundError(project_id)
            return list(self._groups[project_id])

    def get_settings(self, project_id: str) -> Dict[str, Any]:
        with self._lock:
            if project_id not in self._settings:
                raise ProjectNotFoundError(project_id)
            return dict(self._settings[project_id])


def _invalid(project_id: str, where: str, error: Exception) -> CatalogError:
    detail = f"missing field {error}" if isinstance(error, KeyError) else str(error)
    return CatalogError(f"Manifest for project {project_id} is invalid ({where}): {detail}")


class ManifestCatalog(ClipCatalog, SettingsSource):
    """
    Catalog backed by JSON manifests: <catalog_dir>/<project_id>.json

    Manifest layout:
        {
          "clips": [{"id": ..., "path": ..., "duration": ..., ...}],
          "groups": [{"id": ..., "name": ..., "order": 0, "clip_ids": [...]}],
          "settings": {...}
        }

    Relative clip paths resolve against the manifest directory.
    Manifests are re-read on every call so edits are picked up.
    """

    def __init__(self, catalog_dir: str):
        self.catalog_dir = Path(catalog_dir)

    def _load(self, project_id: str) -> Dict[str, Any]:
        manifest_path = self.catalog_dir / f"{project_id}.json"
        if not manifest_path.is_file():
            raise ProjectNotFoundError(project_id)
        try:
            with open(manifest_path, "r", encoding="utf-8") as f:
                manifest = json.load(f)
        except json.JSONDecodeError as e:
            raise CatalogError(f"Manifest for project {project_id} is not valid JSON: {e}") from e
        if not isinstance(manifest, dict):
            raise CatalogError(f"Manifest for project {project_id} must be a JSON object")
        return manifest

    def _clips_from(self, project_id: str, manifest: Dict[str, Any]) -> List[Clip]:
        clips = []
        for position, raw in enumerate(manifest.get("clips", [])):
            try:
                data = dict(raw)
                path = Path(data["path"])
                if not path.is_absolute():
                    data["path"] = str((self.catalog_dir / path).resolve())
                clips.append(Clip(**data))
            except (KeyError, TypeError, ValueError) as e:
                raise _invalid(project_id, f"clip {position}", e) from e
        return clips

    def list_clips(self, project_id: str) -> List[Clip]:
        return self._clips_from(project_id, self._load(project_id))

    def list_groups(self, project_id: str) -> List[Group]:
        manifest = self._load(project_id)
        by_id = {clip.id: clip for clip in self._clips_from(project_id, manifest)}
        groups = []
        for raw in manifest.get("groups", []):
            members = []
            for clip_id in raw.get("clip_ids", []):
                if clip_id not in by_id:
                    raise CatalogError(
                        f"Group {raw.get('id')} references unknown clip {clip_id}"
                    )
                members.append(by_id[clip_id])
            try:
                groups.append(Group(
                    id=raw["id"],
                    name=raw.get("name", ""),
                    order=raw.get("order", 0),
                    clips=members,
                ))
            except (KeyError, ValueError) as e:
                raise _invalid(project_id, f"group {raw.get('id', '?')}", e) from e
        return groups

    def get_settings(self, project_id: str) -> Dict[str, Any]:
        return dict(self._load(project_id).get("settings", {}))
