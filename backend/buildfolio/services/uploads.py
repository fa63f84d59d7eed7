"""
Resolve every pending file in a form to a stored URL, then build the
submission payload. Uploads run one at a time, in form order, and the
first failure aborts the whole submission before anything is persisted.
"""
import time
from typing import Any, Callable, Optional

from buildfolio.services.errors import UploadError
from buildfolio.services.form_state import (
    FormProject,
    PendingFile,
    PortfolioForm,
    build_submission,
)
from buildfolio.services.storage import (
    PROFILE_PHOTOS,
    PROJECT_IMAGES,
    RESUMES,
    ObjectStorage,
    build_upload_path,
)
from buildfolio.utils.logger import get_logger

logger = get_logger(__name__)


def check_pending_file(candidate: Any, asset: str) -> PendingFile:
    """Only real, non-empty files reach storage."""
    if not isinstance(candidate, PendingFile):
        raise UploadError(f"{asset} is not a file", asset=asset)
    if candidate.size == 0:
        raise UploadError(f"{asset} is empty", asset=asset)
    return candidate


def _pending_files(form: PortfolioForm, active: list[FormProject]):
    if form.profile_photo is not None:
        yield form.profile_photo, "profile photo"
    if form.resume is not None:
        yield form.resume, "resume"
    for project in active:
        label = f"project '{project.name.strip()}'"
        if project.cover_image is not None:
            yield project.cover_image, f"cover image for {label}"
        for slot, pending in enumerate(project.carousel_images):
            if pending is not None:
                yield pending, f"gallery image {slot + 1} for {label}"


class UploadOrchestrator:
    def __init__(self, storage: ObjectStorage, clock: Callable[[], float] = time.time):
        self.storage = storage
        self.clock = clock

    async def upload_file(self, bucket: str, pending: Any, asset: str) -> str:
        pending = check_pending_file(pending, asset)
        path = build_upload_path(pending.filename, now_ms=int(self.clock() * 1000))
        try:
            stored = await self.storage.upload(bucket, path, pending.content, pending.content_type)
        except UploadError as e:
            raise UploadError(f"Failed to upload {asset}: {e.message}", asset=asset) from e
        logger.info("Uploaded asset", extra={"bucket": bucket, "asset": asset, "path": path})
        return stored.url

    async def _resolve_single(
        self, bucket: str, pending: Optional[PendingFile], existing_url: str, asset: str
    ) -> str:
        if pending is not None:
            return await self.upload_file(bucket, pending, asset)
        return existing_url or ""

    async def _resolve_project(self, project: FormProject, index: int) -> dict[str, Any]:
        label = f"project '{project.name.strip()}'"
        cover_url = await self._resolve_single(
            PROJECT_IMAGES, project.cover_image, project.cover_image_url, f"cover image for {label}"
        )
        gallery: list[str] = []
        slots = max(len(project.carousel_images), len(project.carousel_image_urls))
        for slot in range(slots):
            pending = project.carousel_images[slot] if slot < len(project.carousel_images) else None
            existing = (
                project.carousel_image_urls[slot] if slot < len(project.carousel_image_urls) else ""
            )
            url = await self._resolve_single(
                PROJECT_IMAGES, pending, existing, f"gallery image {slot + 1} for {label}"
            )
            if url:
                gallery.append(url)

        return {
            "name": project.name,
            "impact_stat": project.impact_stat or None,
            "cover_image_url": cover_url,
            "carousel_images": gallery,
            "description": project.description,
            "tech_stack": list(project.tech_stack),
            "github_url": project.github_url,
            "demo_url": project.demo_url,
            "is_featured": project.is_featured,
            "order_index": index,
        }

    async def resolve(self, form: PortfolioForm) -> dict[str, Any]:
        """Upload in order: profile photo, resume, then each active project."""
        active = [p for p in form.projects if p.is_active()]
        # Checked up front so nothing is uploaded for a submission that would fail anyway
        if any(not p.name.strip() for p in active):
            raise UploadError("Each project must have a name.", asset="projects")
        for pending, asset in _pending_files(form, active):
            check_pending_file(pending, asset)

        photo_url = await self._resolve_single(
            PROFILE_PHOTOS, form.profile_photo, form.profile_photo_url, "profile photo"
        )
        resume_url = await self._resolve_single(RESUMES, form.resume, form.resume_url, "resume")
        projects = [await self._resolve_project(p, i) for i, p in enumerate(active)]
        return build_submission(form, photo_url, resume_url, projects)
