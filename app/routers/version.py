import os
import subprocess  # nosec B404
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version

from fastapi import APIRouter

from app.schemas.version import VersionResponse
from app.settings import settings

router = APIRouter(tags=["version"])


@lru_cache(maxsize=1)
def _package_version() -> str:
    try:
        return version(settings.app_name)
    except PackageNotFoundError:
        return settings.app_version


@lru_cache(maxsize=1)
def _git_sha() -> str:
    sha = os.environ.get("GIT_SHA")
    if sha:
        return sha
    try:
        return (
            subprocess.check_output(  # nosec
                ["git", "rev-parse", "--short", "HEAD"],
                stderr=subprocess.DEVNULL,
            )
            .decode()
            .strip()
        )
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


@router.get("/version", response_model=VersionResponse)
async def get_version() -> VersionResponse:
    return VersionResponse(
        name=settings.app_name,
        version=_package_version(),
        git_sha=_git_sha(),
        build_time=os.environ.get("BUILD_TIME", "unknown"),
    )
