"""
Inventory Service — ドメインエラー

呼び出し側 (API 層) がステータスコードに対応付けられるよう、
呼び出し側で修正可能なエラーを型で区別する。
ストア障害などそれ以外の例外はラップせずにそのまま伝播させる。
"""


class InventoryError(Exception):
    """呼び出し側で回復可能なエラーの基底クラス"""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequest(InventoryError):
    """入力の欠落・形式不正・範囲外"""


class DuplicateTransaction(InvalidRequest):
    """transaction_id が既に記録済み"""


class NotFound(InventoryError):
    """参照された商品が存在しない"""


class InsufficientStock(InventoryError):
    """販売数量が在庫数を超えている"""
