"""Single write/delete path for widget files: the source store first, then the index."""

import logging

from utils.widget_types import OperationResult

logger = logging.getLogger(__name__)


class FileMutationGateway:
    """Persists whole-file snapshots and keeps the search index in step.

    The store call decides success. Index calls are best-effort: their
    failures are logged and never change the result.
    """

    def __init__(self, store, index_writer):
        self.store = store
        self.index_writer = index_writer

    async def write(self, widget_id: str, path: str, content: str) -> OperationResult:
        logger.debug(f"Writing {path} ({len(content)} chars) to widget {widget_id}")
        files = {path: content}
        try:
            await self.store.upsert_files(widget_id, files, [])
        except Exception as exc:
            logger.error(f"Failed to write file {path} in widget {widget_id}: {exc}")
            return OperationResult.failure(f"Failed to write file {path}", exc, path)

        try:
            await self.index_writer.upsert_files(widget_id, files)
        except Exception:
            logger.error(f"Failed to index {path} for widget {widget_id}", exc_info=True)

        return OperationResult(True, f"File {path} written successfully", path)

    async def delete(self, widget_id: str, path: str, remove_from_index: bool = True) -> OperationResult:
        logger.debug(f"Deleting {path} from widget {widget_id}")
        try:
            await self.store.upsert_files(widget_id, {}, [path])
        except Exception as exc:
            logger.error(f"Failed to delete file {path} in widget {widget_id}: {exc}")
            return OperationResult.failure(f"Failed to delete file {path}", exc, path)

        if remove_from_index:
            try:
                await self.index_writer.delete_files(widget_id, [path])
            except Exception:
                logger.error(f"Failed to remove {path} from the index of widget {widget_id}", exc_info=True)

        return OperationResult(True, f"File {path} deleted successfully", path)
