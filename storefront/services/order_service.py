from sqlalchemy.orm import Session, selectinload
from decimal import Decimal
from typing import Optional, List, Tuple, Union
import math
import logging

from storefront.database import MAX_AMOUNT, atomic
from storefront.exceptions import InsufficientStockError, InvalidInputError, NotFoundError
from storefront.models.product import Product
from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.schemas.order import OrderCreate
from storefront.utils.cache import CacheCoordinator, STATS_KEY

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class OrderService:
    """
    Service class for Order operations with race condition handling.

    RACE CONDITION HANDLING STRATEGY:
    =================================
    Every product referenced by an order is read with SELECT ... FOR UPDATE
    inside the order's transaction. This:

    1. Acquires row-level locks on the products being purchased
    2. Prevents other transactions from changing their stock concurrently
    3. Makes the check-then-decrement of stock atomic

    Locks are taken in ascending product ID order so two orders touching
    the same products cannot deadlock. When two customers race for the
    last units, the second transaction waits for the first to commit, sees
    the decremented stock, and fails with InsufficientStockError.

    The cache is never touched while the transaction is open. Invalidation
    happens strictly after commit, so a concurrent reader cannot refill the
    cache with pre-order stock that then looks fresh.
    """

    def __init__(self, db: Session, cache: CacheCoordinator):
        self.db = db
        self.cache = cache

    def create_order(self, order_data: OrderCreate) -> Order:
        """
        Create a new order with atomic stock reservation.

        Algorithm:
        1. Start transaction
        2. SELECT the requested products FOR UPDATE (locks the rows)
        3. Check each product exists, is active and has enough stock
        4. Compute the total from the locked prices
        5. Insert the order and its items, deduct stock
        6. Commit (releases the locks)
        7. Invalidate the affected cache keys

        Args:
            order_data: Customer details and requested items

        Returns:
            Created order with its items loaded

        Raises:
            NotFoundError: If a product doesn't exist or is inactive
            InsufficientStockError: If not enough stock is available
            InvalidInputError: If the order total is too large to store
            StoreUnavailableError: If the database failed; retry the whole call
        """
        # Total quantity per product; a product may appear on several lines
        requested = {}
        for item in order_data.items:
            requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

        with atomic(self.db, "create_order"):
            products = {
                product.id: product
                for product in (
                    self.db.query(Product)
                    .filter(Product.id.in_(sorted(requested)), Product.is_active.is_(True))
                    .order_by(Product.id)
                    .with_for_update()
                    .all()
                )
            }

            for product_id, quantity in requested.items():
                product = products.get(product_id)
                if product is None:
                    raise NotFoundError(f"Product with ID {product_id} not found")
                if product.stock < quantity:
                    raise InsufficientStockError(product_id, available=product.stock, requested=quantity)

            total_amount = sum(
                (products[item.product_id].price * item.quantity for item in order_data.items),
                Decimal("0"),
            ).quantize(CENTS)
            if total_amount > MAX_AMOUNT:
                raise InvalidInputError(
                    f"Order total {total_amount} exceeds the maximum of {MAX_AMOUNT}"
                )

            order = Order(
                customer_name=order_data.customer_name,
                customer_email=order_data.customer_email,
                total_amount=total_amount,
                status=OrderStatus.PENDING,
            )
            for item in order_data.items:
                product = products[item.product_id]
                order.items.append(
                    OrderItem(product=product, quantity=item.quantity, price=product.price)
                )

            for product_id, quantity in requested.items():
                products[product_id].stock -= quantity

            self.db.add(order)
            self.db.flush()
            self.db.refresh(order, attribute_names=["created_at", "updated_at"])

        for product_id in requested:
            self.cache.invalidate_all_for_product(product_id)
        self.cache.invalidate(STATS_KEY)

        logger.info(
            f"Order #{order.id} created for {len(order.items)} item(s), total {order.total_amount}"
        )
        return order

    def get_order(self, order_id: int) -> Order:
        """
        Get an order by ID.

        Raises:
            NotFoundError: If the order doesn't exist
        """
        with atomic(self.db, "get_order"):
            order = self._order_query().filter(Order.id == order_id).first()
            if not order:
                raise NotFoundError(f"Order with ID {order_id} not found")
            return order

    def get_orders(
        self,
        page: int = 1,
        page_size: int = 10,
        status: Optional[OrderStatus] = None
    ) -> Tuple[List[Order], int, int]:
        """
        Get paginated list of orders, newest first.

        Args:
            page: Page number
            page_size: Items per page
            status: Filter by order status

        Returns:
            Tuple of (orders list, total count, total pages)
        """
        with atomic(self.db, "list_orders"):
            query = self.db.query(Order)
            if status:
                query = query.filter(Order.status == status)

            total = query.count()
            total_pages = math.ceil(total / page_size) if total > 0 else 1

            offset = (page - 1) * page_size
            orders = (
                self._order_query(query)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .offset(offset)
                .limit(page_size)
                .all()
            )

        return orders, total, total_pages

    def update_status(self, order_id: int, status: Union[OrderStatus, str]) -> Order:
        """
        Overwrite an order's status. Any status may follow any other.

        Orders are not cached, so nothing is invalidated.

        Raises:
            InvalidInputError: If the status is not a known value
            NotFoundError: If the order doesn't exist
        """
        try:
            new_status = OrderStatus(status)
        except ValueError:
            raise InvalidInputError(f"Invalid status '{status}'") from None

        with atomic(self.db, "update_order_status"):
            order = self._order_query().filter(Order.id == order_id).first()
            if not order:
                raise NotFoundError(f"Order with ID {order_id} not found")

            order.status = new_status
            self.db.flush()
            self.db.refresh(order, attribute_names=["updated_at"])

        logger.info(f"Order #{order_id} status set to {new_status.value}")
        return order

    def _order_query(self, query=None):
        query = query if query is not None else self.db.query(Order)
        return query.options(selectinload(Order.items).selectinload(OrderItem.product))
