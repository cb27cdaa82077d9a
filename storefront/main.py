import logging
import os
import secrets
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo.errors import PyMongoError

from storefront import analytics, catalog, custom_orders, orders, period
from storefront.config import settings
from storefront.database import get_db
from storefront.errors import BackendUnavailable, StorefrontError
from storefront.pricing import PriceReduction, delivery_charges, resolve_coupon
from storefront.schemas import (
    CUSTOM_ORDER_STATUSES,
    FEATURED_CATEGORIES,
    ORDER_STATUSES,
    AdminNotesUpdate,
    CouponCheck,
    CustomOrderCreate,
    CustomOrderStatusUpdate,
    Offer,
    OfferUpdate,
    OrderCreate,
    OrderStatusUpdate,
    Product,
    ProductUpdate,
    ProductViewIn,
    QuoteRequest,
    SliderItem,
    SliderItemUpdate,
    VisitIn,
)

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(PyMongoError)
async def backend_error_handler(request: Request, exc: PyMongoError):
    logger.error("Database call failed on %s %s: %s", request.method, request.url.path, exc)
    err = BackendUnavailable("Service temporarily unavailable. Please try again.")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


async def admin_guard(x_admin_token: Optional[str] = Header(None)) -> None:
    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.ADMIN_TOKEN):
        raise HTTPException(status_code=401, detail="Missing or invalid admin token")


def _lines(items) -> List[dict]:
    return [i.model_dump() for i in items]


# -------------------- Health --------------------

@app.get("/")
async def root():
    return {"message": "Storefront Backend Running"}


@app.get("/test")
async def test():
    try:
        db = await get_db()
        colls = []
        try:
            colls = await db.list_collection_names()
        except PyMongoError as e:
            logger.warning("Listing collections failed: %s", e)
        return {
            "backend": "✅ Running",
            "database": "✅ Available",
            "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
            "database_name": db.name,
            "connection_status": "Connected",
            "collections": colls,
        }
    except Exception as e:
        return {"backend": "Error", "error": str(e)}


@app.get("/meta")
async def meta():
    return {
        "featured_categories": FEATURED_CATEGORIES,
        "delivery_charges": delivery_charges(),
        "order_statuses": list(ORDER_STATUSES),
        "custom_order_statuses": list(CUSTOM_ORDER_STATUSES),
    }


# -------------------- Catalog --------------------

@app.get("/products")
async def get_products(
    q: Optional[str] = Query(None),
    menu_category: Optional[str] = Query(None),
    featured_category: Optional[str] = Query(None),
    brand: Optional[str] = Query(None),
):
    return await catalog.list_products(q=q, menu_category=menu_category, featured_category=featured_category, brand=brand)


@app.get("/products/{product_id}")
async def get_product(product_id: str):
    return await catalog.get_item("product", product_id)


@app.get("/products/{product_id}/related")
async def get_related(product_id: str):
    return await catalog.related_products(product_id)


@app.get("/offers")
async def get_offers():
    return await catalog.list_offers()


@app.get("/offers/{offer_id}")
async def get_offer(offer_id: str):
    return await catalog.get_item("offer", offer_id)


@app.get("/slider")
async def get_slider():
    return await catalog.list_slider_items()


@app.post("/admin/products", dependencies=[Depends(admin_guard)])
async def add_product(payload: Product):
    return await catalog.add_item("product", payload.model_dump(exclude_none=True))


@app.patch("/admin/products/{product_id}", dependencies=[Depends(admin_guard)])
async def edit_product(product_id: str, payload: ProductUpdate):
    return await catalog.update_item("product", product_id, payload.model_dump(exclude_unset=True))


@app.delete("/admin/products/{product_id}", dependencies=[Depends(admin_guard)])
async def remove_product(product_id: str):
    await catalog.delete_item("product", product_id)
    return {"ok": True}


@app.post("/admin/offers", dependencies=[Depends(admin_guard)])
async def add_offer(payload: Offer):
    return await catalog.add_item("offer", payload.model_dump(exclude_none=True))


@app.patch("/admin/offers/{offer_id}", dependencies=[Depends(admin_guard)])
async def edit_offer(offer_id: str, payload: OfferUpdate):
    return await catalog.update_item("offer", offer_id, payload.model_dump(exclude_unset=True))


@app.delete("/admin/offers/{offer_id}", dependencies=[Depends(admin_guard)])
async def remove_offer(offer_id: str):
    await catalog.delete_item("offer", offer_id)
    return {"ok": True}


@app.post("/admin/slider", dependencies=[Depends(admin_guard)])
async def add_slide(payload: SliderItem):
    return await catalog.add_slider_item(payload.model_dump())


@app.patch("/admin/slider/{item_id}", dependencies=[Depends(admin_guard)])
async def edit_slide(item_id: str, payload: SliderItemUpdate):
    return await catalog.update_slider_item(item_id, payload.model_dump(exclude_unset=True))


@app.delete("/admin/slider/{item_id}", dependencies=[Depends(admin_guard)])
async def remove_slide(item_id: str):
    await catalog.delete_slider_item(item_id)
    return {"ok": True}


# -------------------- Checkout --------------------

class CouponOut(BaseModel):
    valid: bool
    code: Optional[str] = None
    type: Optional[str] = None
    amount: float = 0


@app.post("/coupons/check", response_model=CouponOut)
async def coupon_check(payload: CouponCheck):
    records = [await catalog.get_item(line.kind, line.product_id) for line in payload.items]
    coupon = resolve_coupon(payload.code, [r.get("coupon_codes") for r in records])
    if coupon is None:
        return CouponOut(valid=False)
    amount = coupon.amount if isinstance(coupon, PriceReduction) else 0
    return CouponOut(valid=True, code=coupon.code, type=coupon.type, amount=amount)


@app.post("/checkout/quote")
async def checkout_quote(payload: QuoteRequest):
    items, priced = await orders.price_items(_lines(payload.items), payload.delivery_zone, payload.coupon_code)
    return {"items": items, **priced.to_dict()}


@app.post("/orders")
async def place_order(payload: OrderCreate):
    return await orders.create_order(
        customer_name=payload.customer_name,
        phone=payload.phone,
        address=payload.address,
        items=_lines(payload.items),
        delivery_zone=payload.delivery_zone,
        notes=payload.notes,
        coupon_code=payload.coupon_code,
    )


@app.get("/orders/track/{code}")
async def track(code: str):
    return await orders.track_order(code)


# -------------------- Admin orders --------------------

@app.get("/admin/orders", dependencies=[Depends(admin_guard)])
async def admin_orders(
    order_id: Optional[str] = Query(None),
    product_name: Optional[str] = Query(None),
    customer_name: Optional[str] = Query(None),
    phone: Optional[str] = Query(None),
    date_of_purchase: Optional[str] = Query(None, description="YYYY-MM-DD"),
    status: Optional[str] = Query(None),
):
    return await orders.list_orders(
        order_id=order_id,
        product_name=product_name,
        customer_name=customer_name,
        phone=phone,
        date_of_purchase=date_of_purchase,
        status=status,
    )


@app.get("/admin/orders/pending-count", dependencies=[Depends(admin_guard)])
async def admin_pending_count():
    return {"pending": await orders.pending_count()}


@app.post("/admin/orders/reconcile", dependencies=[Depends(admin_guard)])
async def admin_reconcile():
    return await orders.reconcile_reservations()


@app.get("/admin/orders/{order_id}", dependencies=[Depends(admin_guard)])
async def admin_order(order_id: str):
    return await orders.get_order(order_id)


@app.patch("/admin/orders/{order_id}/status", dependencies=[Depends(admin_guard)])
async def admin_order_status(order_id: str, payload: OrderStatusUpdate):
    return await orders.update_status(order_id, payload.status)


@app.delete("/admin/orders/{order_id}", dependencies=[Depends(admin_guard)])
async def admin_delete_order(order_id: str):
    await orders.delete_order(order_id)
    return {"ok": True}


# -------------------- Custom orders --------------------

@app.post("/custom-orders")
async def submit_custom_order(payload: CustomOrderCreate):
    return await custom_orders.submit(payload.model_dump())


@app.get("/admin/custom-orders", dependencies=[Depends(admin_guard)])
async def admin_custom_orders(status: Optional[str] = Query(None)):
    return await custom_orders.list_custom_orders(status)


@app.patch("/admin/custom-orders/{order_id}/status", dependencies=[Depends(admin_guard)])
async def admin_custom_order_status(order_id: str, payload: CustomOrderStatusUpdate):
    return await custom_orders.update_status(order_id, payload.status)


@app.patch("/admin/custom-orders/{order_id}/notes", dependencies=[Depends(admin_guard)])
async def admin_custom_order_notes(order_id: str, payload: AdminNotesUpdate):
    return await custom_orders.set_admin_notes(order_id, payload.admin_notes)


@app.delete("/admin/custom-orders/{order_id}", dependencies=[Depends(admin_guard)])
async def admin_delete_custom_order(order_id: str):
    await custom_orders.delete(order_id)
    return {"ok": True}


# -------------------- Analytics --------------------

@app.post("/analytics/visit")
async def track_visit(payload: VisitIn):
    visitor_id = payload.visitor_id or analytics.new_visitor_id()
    await analytics.track_visitor(visitor_id)
    return {"visitor_id": visitor_id}


@app.post("/analytics/product-view")
async def track_product_view(payload: ProductViewIn):
    visitor_id = payload.visitor_id or analytics.new_visitor_id()
    await analytics.track_product_view(payload.product_id, visitor_id)
    return {"visitor_id": visitor_id}


@app.get("/admin/analytics", dependencies=[Depends(admin_guard)])
async def admin_analytics(background_tasks: BackgroundTasks):
    data = await analytics.dashboard()
    background_tasks.add_task(analytics.cleanup_old_events)
    return data


@app.get("/admin/period", dependencies=[Depends(admin_guard)])
async def admin_period():
    return (await period.get_period()).to_dict()


@app.post("/admin/period/reset", dependencies=[Depends(admin_guard)])
async def admin_period_reset():
    return (await period.reset_period()).to_dict()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", settings.PORT)))
