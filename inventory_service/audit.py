"""
Inventory Service — 取引ログ

1トランザクション1行の追記専用テキストログ。
書き込み失敗はログに残すだけで、呼び出し元には伝播させない。
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


class TransactionLog:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _write(self, line: str) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line)

    async def append(self, text: str) -> bool:
        line = f"[{datetime.now(timezone.utc).isoformat()}] {text}\n"
        try:
            await asyncio.to_thread(self._write, line)
        except OSError:
            logger.exception("Failed to write transaction log %s", self.path)
            return False
        return True
