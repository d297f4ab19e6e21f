from pydantic import BaseModel


class VersionResponse(BaseModel):
    """Build metadata of the running service."""

    name: str
    version: str
    git_sha: str
    build_time: str
