"""
Clip catalog: read-only view over project clips, groups and settings.
"""

from .adapter import (
    ClipCatalog,
    SettingsSource,
    InMemoryCatalog,
    ManifestCatalog,
    ProjectMaterial,
    load_project_material,
)
from .errors import CatalogError, ProjectNotFoundError, DuplicateMembershipError
from .models import Clip, Group

__all__ = [
    "Clip",
    "Group",
    "ClipCatalog",
    "SettingsSource",
    "InMemoryCatalog",
    "ManifestCatalog",
    "ProjectMaterial",
    "load_project_material",
    "CatalogError",
    "ProjectNotFoundError",
    "DuplicateMembershipError",
]
