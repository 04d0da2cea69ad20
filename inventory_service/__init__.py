"""
Inventory Service — 在庫・売買トランザクション管理サービス

商品・在庫数・売買トランザクションをリレーショナルストアで管理し、
在庫が閾値を下回ったら low-stock 通知を発行する。
"""

__version__ = "0.1.0"
