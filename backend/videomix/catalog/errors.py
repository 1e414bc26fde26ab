"""
Catalog-specific error types.
"""


class CatalogError(Exception):
    """Base exception for clip catalog failures."""
    pass


class ProjectNotFoundError(CatalogError):
    """Raised when a project id is unknown to the catalog."""

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class DuplicateMembershipError(CatalogError):
    """Raised when one clip is reported as a member of two groups."""

    def __init__(self, clip_id: str, first_group: str, second_group: str):
        self.clip_id = clip_id
        self.first_group = first_group
        self.second_group = second_group
        super().__init__(
            f"Clip {clip_id} belongs to both group {first_group} and group {second_group}"
        )
