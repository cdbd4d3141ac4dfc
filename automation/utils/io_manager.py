import asyncio
import json
import logging
import os
from typing import Any, Optional

logger = logging.getLogger(__name__)

class IOManager:
    """
    File I/O for the settings store, run off the event loop with
    asyncio.to_thread so ticks and page work are never blocked.
    """

    @staticmethod
    async def write_json(path: str, data: Any, encoding: str = "utf-8") -> bool:
        """
        Serializes `data` and replaces `path` atomically.
        """
        try:
            dir_path = os.path.dirname(os.path.abspath(path))
            payload = json.dumps(data, indent=2, ensure_ascii=False)

            def _write_op():
                os.makedirs(dir_path, exist_ok=True)
                tmp_path = f"{path}.tmp"
                with open(tmp_path, "w", encoding=encoding) as f:
                    f.write(payload)
                os.replace(tmp_path, path)

            await asyncio.to_thread(_write_op)
            return True
        except Exception as e:
            logger.error(f"IOManager Write Error ({path}): {e}")
            return False

    @staticmethod
    async def read_json(path: str, encoding: str = "utf-8") -> Optional[Any]:
        """
        Reads and parses a JSON file. Missing file -> None.
        """
        if not os.path.exists(path):
            return None

        def _read_op():
            with open(path, "r", encoding=encoding) as f:
                return json.load(f)

        return await asyncio.to_thread(_read_op)

    @staticmethod
    def read_text_sync(path: str, encoding: str = "utf-8") -> Optional[str]:
        """
        Synchronous read for the CLI.
        """
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding=encoding) as f:
                return f.read()
        except Exception as e:
            logger.error(f"IOManager Sync Read Error ({path}): {e}")
            return None
