"""Project reference reader backed by MongoDB."""
import logging
from typing import Optional

from pymongo.errors import PyMongoError

from app.errors import StorageError
from app.models.project import Project
from app.utils.mongo import parse_object_id, to_decimal

logger = logging.getLogger(__name__)


class MongoProjectRepository:
    """Looks up the customer and budget of a project."""

    def __init__(self, db):
        """Initialize repository with database connection."""
        self.db = db
        self.projects = db["projects"]

    async def get(self, project_id: str) -> Optional[Project]:
        """
        Get a project by ID.

        Args:
            project_id: Project ID

        Returns:
            Project, or None if the ID is malformed or unknown
        """
        object_id = parse_object_id(project_id)
        if object_id is None:
            return None

        try:
            doc = await self.projects.find_one({"_id": object_id})
        except PyMongoError as e:
            logger.error("Failed to load project %s: %s", project_id, e)
            raise StorageError(str(e)) from e

        if not doc:
            return None

        return Project(
            _id=str(doc["_id"]),
            name=doc.get("name", ""),
            customer_id=doc.get("customer_id"),
            total_budget=to_decimal(doc.get("total_budget")),
        )
