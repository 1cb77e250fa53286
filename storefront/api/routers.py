from fastapi import APIRouter
from storefront.common.constants import VERSION_PREFIX
from storefront.cart.routes import carts_router
from storefront.common.routes import home_router
from storefront.discounts.routes import discounts_router
from storefront.inventory.routes import inventory_router
from storefront.orders.routes import orders_router
from storefront.orders.webhooks import webhooks_router


public_routers = APIRouter(prefix=VERSION_PREFIX)

public_routers.include_router(carts_router,prefix="/cart",tags=["cart"])
public_routers.include_router(discounts_router,prefix="/discounts",tags=["discounts"])
public_routers.include_router(orders_router,tags=["orders"])
public_routers.include_router(inventory_router,prefix="/inventory",tags=["inventory"])
public_routers.include_router(webhooks_router,prefix="/payments",tags=["webhooks"])
public_routers.include_router(home_router,tags=["home"])
