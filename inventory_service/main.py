"""
Inventory Service — FastAPI エントリーポイント

商品・在庫・売買トランザクションの API。
Command (POST/PUT) は InventoryManager、Query (GET) は queries に委譲する。

起動例:
  uvicorn inventory_service.main:create_app --factory
"""

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from . import queries, schema
from .alerts import RedisLowStockPublisher, log_low_stock
from .commands import InventoryManager
from .config import Settings, configure_logging
from .errors import DuplicateTransaction, InsufficientStock, InvalidRequest, NotFound

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request Models ───────────────────────────────


class CreateProductRequest(BaseModel):
    productCode: str | None = None
    name: str | None = None
    price: float | None = None
    stock: int | None = None
    category: str | None = None


class UpdateProductRequest(BaseModel):
    quantity: int | None = None
    transactionType: str | None = None
    name: str | None = None
    price: float | None = None
    category: str | None = None
    stock: int | None = None


class CreateTransactionRequest(BaseModel):
    transactionId: str | None = None
    productId: int | str | None = None
    quantity: int | None = None
    type: str | None = None
    customerId: int | str | None = None


def _session(request: Request) -> AsyncSession:
    return request.app.state.async_session()


def _manager(request: Request) -> InventoryManager:
    return request.app.state.manager


# ── Command Endpoints (Write 側) ─────────────────


@router.post("/products", status_code=201)
async def cmd_create_product(req: CreateProductRequest, request: Request):
    """商品登録コマンド"""
    if not req.name or req.price is None or req.stock is None or not req.category:
        raise HTTPException(400, "Required fields: name, price, stock, category")
    async with _session(request) as session:
        result = await _manager(request).register_product(
            session,
            req.productCode,
            req.name,
            req.price,
            req.stock,
            req.category,
        )
        return {"message": "Product created", **result}


@router.put("/products/{ref}")
async def cmd_update_product(ref: str, req: UpdateProductRequest, request: Request):
    """
    在庫更新 (quantity + transactionType) または商品属性の更新
    """
    async with _session(request) as session:
        if req.quantity is not None and req.transactionType:
            product = await _manager(request).adjust_stock(
                session, ref, req.quantity, req.transactionType
            )
            return {"message": "Stock updated", "product": product.as_dict()}

        product = await _manager(request).update_product(
            session,
            ref,
            name=req.name,
            price=req.price,
            category=req.category,
            stock=req.stock,
        )
        return {"message": "Product updated", "product": product.as_dict()}


@router.post("/transactions", status_code=201)
async def cmd_create_transaction(req: CreateTransactionRequest, request: Request):
    """売買トランザクション作成コマンド (transactionId の重複は先に弾く)"""
    if not req.transactionId or req.productId is None or req.quantity is None or not req.type:
        raise HTTPException(400, "Required fields: transactionId, productId, quantity, type")
    async with _session(request) as session:
        if await queries.transaction_exists(session, req.transactionId):
            raise HTTPException(409, f"transactionId '{req.transactionId}' already used")
        result = await _manager(request).create_transaction(
            session,
            req.transactionId,
            req.productId,
            req.quantity,
            req.type,
            req.customerId,
        )
        return {"message": "Transaction created", **result}


# ── Query Endpoints (Read 側) ────────────────────


@router.get("/products")
async def query_list_products(
    request: Request,
    category: str | None = None,
    page: int = 1,
    limit: int = 10,
):
    async with _session(request) as session:
        products = await queries.list_products(session, category, page, limit)
        return [p.as_dict() for p in products]


@router.get("/products/{ref}/history")
async def query_product_history(ref: str, request: Request):
    async with _session(request) as session:
        return await queries.product_history(session, ref)


@router.get("/transactions")
async def query_list_transactions(request: Request):
    async with _session(request) as session:
        return await queries.list_transactions(session)


@router.get("/reports/inventory")
async def query_inventory_value(request: Request):
    """在庫総額"""
    async with _session(request) as session:
        total = await queries.inventory_value(session)
        return {"total_inventory_value": float(total)}


@router.get("/reports/low-stock")
async def query_low_stock(request: Request, threshold: int | None = None):
    """在庫が閾値以下の商品 (閾値省略時は設定値)"""
    if threshold is None:
        threshold = request.app.state.settings.low_stock_threshold
    async with _session(request) as session:
        products = await queries.low_stock_list(session, threshold)
        return [p.as_dict() for p in products]


@router.get("/health")
async def health():
    return {"status": "ok", "service": "inventory-service"}


# ── Error Mapping ────────────────────────────────


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


# 型の合わない入力も InvalidRequest と同じく 400 で返す
async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    manager = InventoryManager(settings)
    manager.channel.subscribe(log_low_stock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = create_async_engine(settings.database_url, echo=False)
        app.state.async_session = sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        if settings.create_schema:
            await schema.create_schema(engine)

        redis_pool: aioredis.Redis | None = None
        unsubscribe = None
        if settings.redis_url:
            redis_pool = aioredis.from_url(settings.redis_url, decode_responses=True)
            unsubscribe = manager.channel.subscribe(RedisLowStockPublisher(redis_pool))
        logger.info(
            "Inventory service ready (low stock threshold=%d, redis=%s)",
            settings.low_stock_threshold,
            "on" if redis_pool is not None else "off",
        )
        yield
        if unsubscribe:
            unsubscribe()
        if redis_pool is not None:
            await redis_pool.aclose()
        await engine.dispose()

    app = FastAPI(title="Inventory Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.manager = manager

    # ダッシュボードからのアクセスを許可
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(DuplicateTransaction, _error_handler(409))
    app.add_exception_handler(InvalidRequest, _error_handler(400))
    app.add_exception_handler(InsufficientStock, _error_handler(400))
    app.add_exception_handler(NotFound, _error_handler(404))

    app.include_router(router)
    return app
