"""
Replays sample webhook payload files into the store.
"""
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import ValidationError as PayloadValidationError

from app.core.errors import ValidationError
from app.core.logging import get_logger
from app.schemas.webhook import WebhookPayload
from app.services.ingestion import WebhookIngestor
from app.services.store import MessageStore

logger = get_logger(__name__)

SAMPLE_FILE_RE = re.compile(r"conversation_(\d+)_(message|status)_(\d+)")


@dataclass
class ImportSummary:
    messages_imported: int = 0
    statuses_processed: int = 0
    files_skipped: List[str] = field(default_factory=list)
    conversations: int = 0
    messages: int = 0


def sample_sort_key(path: Path) -> Tuple[int, int, int, str]:
    """Conversation number, then messages before statuses, then sequence."""
    match = SAMPLE_FILE_RE.search(path.name)
    if match is None:
        return (1 << 30, 0, 0, path.name)
    kind_order = 0 if match.group(2) == "message" else 1
    return (int(match.group(1)), kind_order, int(match.group(3)), path.name)


def load_payload(path: Path) -> WebhookPayload:
    raw = json.loads(path.read_text(encoding="utf-8"))
    # Sample exports wrap the provider body in "metaData"
    if isinstance(raw, dict) and "metaData" in raw:
        raw = raw["metaData"]
    return WebhookPayload.model_validate(raw)


class SampleImporter:
    def __init__(self, store: MessageStore, ingestor: WebhookIngestor):
        self.store = store
        self.ingestor = ingestor

    async def run(self, sample_dir: Path, clear: bool = True) -> ImportSummary:
        if clear:
            await self.store.clear_all()

        files = sorted(sample_dir.glob("*.json"), key=sample_sort_key)
        message_files = [path for path in files if "_status_" not in path.name]
        status_files = [path for path in files if "_status_" in path.name]
        logger.info(
            "Importing sample data",
            extra={"extra_data": {"directory": str(sample_dir), "files": len(files)}}
        )

        summary = ImportSummary()
        for path in message_files:
            summary.messages_imported += await self._replay(path, "messages", summary)
        for path in status_files:
            summary.statuses_processed += await self._replay(path, "statuses", summary)

        conversations = await self.store.list_conversations()
        summary.conversations = len(conversations)
        for conversation in conversations:
            summary.messages += len(await self.store.list_messages(conversation.id))
        return summary

    async def _replay(self, path: Path, require: str, summary: ImportSummary) -> int:
        try:
            payload = load_payload(path)
            result = await self.ingestor.ingest(payload, require=require)
        except (json.JSONDecodeError, PayloadValidationError, ValidationError) as e:
            logger.warning(
                "Skipping sample file",
                extra={"extra_data": {"file": path.name, "error": str(e)}}
            )
            summary.files_skipped.append(path.name)
            return 0
        return result.processed


def format_summary(summary: ImportSummary, conversations: Optional[list] = None) -> str:
    lines = [
        f"Total messages imported: {summary.messages_imported}",
        f"Total status updates processed: {summary.statuses_processed}",
        f"Total conversations: {summary.conversations}",
        f"Total messages: {summary.messages}",
    ]
    if summary.files_skipped:
        lines.append(f"Skipped files: {', '.join(summary.files_skipped)}")
    for index, conversation in enumerate(conversations or [], start=1):
        lines.append(f"{index}. {conversation.name} ({conversation.wa_id})")
        lines.append(f"   Last: \"{conversation.last_message}\"")
    return "\n".join(lines)
