from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import verify_internal_api_key
from services.coupon_service.exceptions import CouponError
from services.product_service.exceptions import InsufficientStockError, ProductNotFoundError

from .exceptions import CouponRemovalError, OrderNotFoundError
from .models import MAX_ORDER_ID
from .schemas import OrderCreate, OrderResponse
from .service import OrderService

# Order management is internal (storefront BFF / admin), so the whole router is protected
router = APIRouter(prefix="/orders", dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "storefront_payments", "status": "running"}


@router.post("/", response_model=OrderResponse, status_code=201)
async def create_order(order: OrderCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await OrderService.create_order(db, order)
    except (ProductNotFoundError, InsufficientStockError, CouponError) as e:
        raise HTTPException(status_code=400, detail={"error": e.message, **e.details})


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: int = Path(gt=0, le=MAX_ORDER_ID), db: AsyncSession = Depends(get_db)):
    try:
        return await OrderService.get_order(db, order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.delete("/{order_id}/coupon", response_model=OrderResponse)
async def remove_coupon(order_id: int = Path(gt=0, le=MAX_ORDER_ID), db: AsyncSession = Depends(get_db)):
    try:
        return await OrderService.remove_coupon(db, order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except CouponRemovalError as e:
        raise HTTPException(status_code=400, detail=e.message)
