"""
Inventory Service — 設定とロギング

閾値やログ出力先などはグローバル変数ではなく Settings として
各コンポーネントの生成時に渡す。
"""

import logging
import os

from pydantic import BaseModel, Field

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseModel):
    database_url: str
    redis_url: str | None = None
    low_stock_threshold: int = Field(default=5, ge=0)
    transaction_log: str = "transactions.log"
    log_level: str = "INFO"
    create_schema: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """環境変数から設定を読み込む。DATABASE_URL は必須。"""
        return cls(
            database_url=os.environ["DATABASE_URL"],
            redis_url=os.environ.get("REDIS_URL") or None,
            low_stock_threshold=int(os.environ.get("LOW_STOCK_THRESHOLD", "5")),
            transaction_log=os.environ.get("TRANSACTION_LOG", "transactions.log"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            create_schema=os.environ.get("CREATE_SCHEMA", "").lower() in ("1", "true", "yes"),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
