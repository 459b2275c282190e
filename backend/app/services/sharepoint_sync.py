from __future__ import annotations

import io
import json
import logging
import math
import re
import uuid
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.db import SessionLocal
from ..models.brand import BrandKnowledge
from ..models.sharepoint import SyncProgress
from ..models.source_document import SourceDocument
from .connectors.graph import MicrosoftGraphConnector
from .llm import chat_completion
from .llm_costs import LLMCostTracker, cost_for_tokens, estimate_tokens_for_bytes
from .sharepoint_oauth import get_valid_access_token

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".docx", ".doc", ".pdf", ".pptx", ".ppt", ".txt", ".md")
MAX_SCAN_DEPTH = 10
MIN_CONTENT_CHARS = 100
MAX_EXTRACT_CHARS = 12000
DOCS_PER_MINUTE = 5
# Knowledge extraction answers are roughly 30% of the prompt
OUTPUT_RATIO = 0.3

KNOWLEDGE_CATEGORIES = (
    "clients",
    "projects",
    "technologies",
    "methodologies",
    "achievements",
    "key_phrases",
    "team_members",
    "industries",
)

KNOWLEDGE_PROMPT = """Extract structured knowledge from this document. Return JSON with these categories:
{
  "clients": ["client names mentioned"],
  "projects": ["project names or descriptions"],
  "technologies": ["tech, platforms, tools mentioned"],
  "methodologies": ["approaches, frameworks, processes"],
  "achievements": ["awards, metrics, accomplishments"],
  "key_phrases": ["distinctive phrases, terminology"],
  "team_members": ["people names and roles if mentioned"],
  "industries": ["verticals, sectors mentioned"]
}
Only include items that are clearly extractable. Empty arrays are fine."""

_XML_TAG = re.compile(r"<[^>]+>")
_WS = re.compile(r"\s+")


@dataclass
class ScannedFile:
    id: str
    name: str
    size: int
    type: str
    supported: bool
    path: str = ""


@dataclass
class ScanResult:
    files: List[ScannedFile] = field(default_factory=list)
    estimated_tokens: int = 0
    estimated_cost: float = 0.0
    estimated_time_minutes: int = 1

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def supported_files(self) -> int:
        return sum(1 for f in self.files if f.supported)

    @property
    def skipped_files(self) -> int:
        return self.total_files - self.supported_files

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_files": self.total_files,
            "supported_files": self.supported_files,
            "skipped_files": self.skipped_files,
            "estimated_tokens": self.estimated_tokens,
            "estimated_cost": self.estimated_cost,
            "estimated_time_minutes": self.estimated_time_minutes,
            "files": [f.__dict__ for f in self.files],
        }


def file_extension(name: str) -> str:
    match = re.search(r"\.[^.]+$", name or "")
    return match.group(0).lower() if match else ""


def scan_folder(
    graph: MicrosoftGraphConnector,
    access_token: str,
    drive_id: str,
    folder_id: Optional[str] = None,
    max_depth: int = MAX_SCAN_DEPTH,
) -> ScanResult:
    """Walk a drive folder recursively and estimate what a sync would cost."""
    result = ScanResult()

    def walk(current: Optional[str], depth: int, prefix: str) -> None:
        if depth > max_depth:
            return
        for item in graph.list_children(access_token, drive_id, current):
            name = item.get("name") or ""
            if item.get("folder") is not None:
                walk(item["id"], depth + 1, f"{prefix}{name}/")
                continue
            ext = file_extension(name)
            result.files.append(
                ScannedFile(
                    id=item["id"],
                    name=name,
                    size=int(item.get("size") or 0),
                    type=ext,
                    supported=ext in SUPPORTED_EXTENSIONS,
                    path=f"{prefix}{name}",
                )
            )

    walk(folder_id, 0, "/")

    total_size = sum(f.size for f in result.files if f.supported)
    result.estimated_tokens = estimate_tokens_for_bytes(total_size)
    cost = cost_for_tokens("gpt-4o-mini", result.estimated_tokens, int(result.estimated_tokens * OUTPUT_RATIO))
    result.estimated_cost = round(cost, 2)
    result.estimated_time_minutes = max(1, math.ceil(result.supported_files / DOCS_PER_MINUTE))
    return result


def extract_text(name: str, data: bytes) -> str:
    """
    Best-effort plain text. Office Open XML files are unzipped and stripped
    of tags; everything else is decoded as UTF-8.
    """
    ext = file_extension(name)
    if ext in (".docx", ".pptx"):
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                if ext == ".docx":
                    parts = ["word/document.xml"]
                else:
                    parts = sorted(n for n in zf.namelist() if re.match(r"ppt/slides/slide\d+\.xml$", n))
                xml = " ".join(zf.read(p).decode("utf-8", errors="ignore") for p in parts if p in zf.namelist())
            return _WS.sub(" ", _XML_TAG.sub(" ", xml)).strip()
        except zipfile.BadZipFile:
            logger.warning("Not a valid Office file: %s", name)
            return ""
    return data.decode("utf-8", errors="ignore")


def extract_knowledge(content: str, llm: Any = None, tracker: Optional[LLMCostTracker] = None) -> Dict[str, List[str]]:
    completion = chat_completion(
        [
            {"role": "system", "content": KNOWLEDGE_PROMPT},
            {"role": "user", "content": content[:MAX_EXTRACT_CHARS]},
        ],
        max_tokens=1500,
        temperature=0.3,
        client=llm,
        json_mode=True,
    )
    if tracker is not None:
        tracker.add_record(
            completion.model,
            "knowledge_extraction",
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
        )
    try:
        parsed = json.loads(completion.text or "{}")
    except json.JSONDecodeError:
        logger.warning("Knowledge extraction returned invalid JSON")
        return {}
    if not isinstance(parsed, dict):
        return {}
    out: Dict[str, List[str]] = {}
    for category in KNOWLEDGE_CATEGORIES:
        items = parsed.get(category)
        if isinstance(items, list):
            out[category] = [str(i) for i in items if str(i).strip()]
    return out


def merge_knowledge(db: Session, space_id: uuid.UUID, knowledge: Dict[str, List[str]]) -> None:
    """Union new items into each category, keeping first-seen order."""
    for category, items in knowledge.items():
        if not items:
            continue
        row = (
            db.query(BrandKnowledge)
            .filter(BrandKnowledge.space_id == space_id, BrandKnowledge.category == category)
            .first()
        )
        if not row:
            row = BrandKnowledge(space_id=space_id, category=category, items=[])
            db.add(row)
        merged = list(row.items or [])
        for item in items:
            if item not in merged:
                merged.append(item)
        row.items = merged
        row.last_synced_at = datetime.utcnow()


def start_sync(
    db: Session,
    space_id: str,
    site_id: str,
    drive_id: str,
    folder_id: Optional[str] = None,
) -> SyncProgress:
    progress = SyncProgress(
        space_id=uuid.UUID(str(space_id)),
        source_type="sharepoint",
        source_path=f"{site_id}/{drive_id}/{folder_id or 'root'}",
        status="processing",
        started_at=datetime.utcnow(),
    )
    db.add(progress)
    db.commit()
    db.refresh(progress)
    return progress


def sync_sharepoint_folder(
    db: Session,
    sync_id: str | uuid.UUID,
    drive_id: str,
    folder_id: Optional[str] = None,
    graph: Optional[MicrosoftGraphConnector] = None,
    llm: Any = None,
) -> SyncProgress:
    """
    Pull every supported file under a folder into the space's knowledge.

    Files shorter than MIN_CONTENT_CHARS after extraction are logged and
    skipped. Per-file failures go to the error log; anything that breaks the
    whole run marks it failed.
    """
    progress = db.query(SyncProgress).filter(SyncProgress.id == uuid.UUID(str(sync_id))).first()
    if not progress:
        raise LookupError(f"Sync {sync_id} not found")
    space_uuid = progress.space_id
    graph = graph or MicrosoftGraphConnector()
    tracker = LLMCostTracker(job_id=str(progress.id))
    errors: List[Dict[str, Any]] = []
    log_extra = {"space_id": str(space_uuid), "connector": "microsoft_graph"}

    try:
        token = get_valid_access_token(db, space_uuid, graph)
        scan = scan_folder(graph, token, drive_id, folder_id)
        supported = [f for f in scan.files if f.supported]

        progress.total_documents = len(supported)
        progress.estimated_tokens = scan.estimated_tokens
        progress.estimated_cost = scan.estimated_cost
        db.commit()

        processed = 0
        for scanned in supported:
            try:
                content = extract_text(scanned.name, graph.download_item(token, drive_id, scanned.id))
                if len(content.strip()) < MIN_CONTENT_CHARS:
                    errors.append({"file": scanned.name, "error": "Content too short or empty"})
                    continue

                db.add(
                    SourceDocument(
                        space_id=space_uuid,
                        source_type="sharepoint",
                        title=scanned.name,
                        content=content,
                        meta={
                            "drive_id": drive_id,
                            "item_id": scanned.id,
                            "path": scanned.path,
                            "sync_id": str(progress.id),
                        },
                        is_confirmed=True,
                    )
                )
                merge_knowledge(db, space_uuid, extract_knowledge(content, llm=llm, tracker=tracker))

                processed += 1
                progress.processed_documents = processed
                progress.actual_tokens = tracker.total_tokens
                db.commit()
            except Exception as e:
                db.rollback()
                logger.warning("SharePoint file failed: %s: %s", scanned.name, e, extra={**log_extra, "step": "sync_file"})
                errors.append({"file": scanned.name, "error": str(e)})

        progress.status = "completed"
        progress.completed_at = datetime.utcnow()
        progress.actual_tokens = tracker.total_tokens
        progress.actual_cost = round(tracker.total_cost_usd, 6)
        progress.error_log = errors
        db.commit()
        logger.info(
            "SharePoint sync completed: %s/%s documents", processed, len(supported),
            extra={**log_extra, "step": "sync_done"},
        )
    except Exception as e:
        db.rollback()
        logger.exception("SharePoint sync failed", extra={**log_extra, "step": "sync_failed"})
        progress.status = "failed"
        progress.completed_at = datetime.utcnow()
        progress.error_log = errors + [{"error": str(e)}]
        db.commit()

    return progress


@celery_app.task(name="app.services.sharepoint_sync.run_sharepoint_sync", bind=True, queue="sync")
def run_sharepoint_sync(self, sync_id: str, drive_id: str, folder_id: str | None = None):
    db: Session = SessionLocal()
    graph = MicrosoftGraphConnector()
    try:
        progress = sync_sharepoint_folder(db, sync_id, drive_id, folder_id, graph=graph)
        return {"sync_id": str(progress.id), "status": progress.status}
    finally:
        graph.close()
        db.close()
