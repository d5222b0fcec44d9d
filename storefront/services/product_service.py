from sqlalchemy.orm import Session
from typing import Optional, List, Tuple
import logging

from storefront.config import get_settings
from storefront.database import atomic
from storefront.exceptions import NotFoundError
from storefront.models.product import Product
from storefront.schemas.product import ProductCreate, ProductUpdate, ProductResponse
from storefront.utils.cache import CacheCoordinator, PRODUCTS_ALL_KEY, STATS_KEY, product_key

logger = logging.getLogger(__name__)


class ProductService:
    """
    Service class for catalog reads and mutations.

    This service handles:
    - Reading the active catalog and single products (read-through cached)
    - Creating, updating and soft-deleting products
    - Invalidating the affected cache keys after each committed mutation
    """

    def __init__(self, db: Session, cache: CacheCoordinator):
        self.db = db
        self.cache = cache
        self.settings = get_settings()

    def list_products(self) -> List[ProductResponse]:
        """
        Get every active product, newest first.

        Served from ``products:all`` when cached; otherwise loaded from the
        database and cached.
        """
        return self.list_products_with_source()[0]

    def list_products_with_source(self) -> Tuple[List[ProductResponse], str]:
        data, source = self.cache.read_through_with_source(
            PRODUCTS_ALL_KEY,
            self.settings.CACHE_TTL_PRODUCTS,
            self._load_active_products,
        )
        return [ProductResponse.model_validate(item) for item in data], source

    def get_product(self, product_id: int) -> ProductResponse:
        """
        Get an active product by ID, using the cache when possible.

        Raises:
            NotFoundError: If the product doesn't exist or is inactive
        """
        return self.get_product_with_source(product_id)[0]

    def get_product_with_source(self, product_id: int) -> Tuple[ProductResponse, str]:
        """Get an active product along with where it was read from (cache or database)."""
        data, source = self.cache.read_through_with_source(
            product_key(product_id),
            self.settings.CACHE_TTL_PRODUCT,
            lambda: self._load_product(product_id),
        )
        if data is None:
            raise NotFoundError(f"Product with ID {product_id} not found")
        return ProductResponse.model_validate(data), source

    def create(self, product_data: ProductCreate) -> ProductResponse:
        """
        Create a new product.

        Args:
            product_data: Validated product fields

        Returns:
            Created product
        """
        with atomic(self.db, "create_product"):
            product = Product(**product_data.model_dump())
            self.db.add(product)
            self.db.flush()
            self.db.refresh(product)
            response = ProductResponse.model_validate(product)

        self.cache.invalidate(PRODUCTS_ALL_KEY)
        self.cache.invalidate(STATS_KEY)
        logger.info(f"Product #{response.id} created")
        return response

    def update(self, product_id: int, product_data: ProductUpdate) -> ProductResponse:
        """
        Update an existing active product.

        Only fields that were provided (and are not null) are changed.

        Raises:
            NotFoundError: If the product doesn't exist or is inactive
        """
        with atomic(self.db, "update_product"):
            product = (
                self.db.query(Product)
                .filter(Product.id == product_id, Product.is_active.is_(True))
                .with_for_update()
                .first()
            )
            if not product:
                raise NotFoundError(f"Product with ID {product_id} not found")

            update_data = product_data.model_dump(exclude_unset=True)
            for field, value in update_data.items():
                if value is not None:
                    setattr(product, field, value)

            self.db.flush()
            self.db.refresh(product)
            response = ProductResponse.model_validate(product)

        self.cache.invalidate_all_for_product(product_id)
        logger.info(f"Product #{product_id} updated")
        return response

    def delete(self, product_id: int) -> bool:
        """
        Soft-delete a product.

        Returns:
            True if the product was deactivated, False if it was already
            inactive (nothing changes in that case)

        Raises:
            NotFoundError: If no product has this ID
        """
        with atomic(self.db, "delete_product"):
            product = (
                self.db.query(Product)
                .filter(Product.id == product_id)
                .with_for_update()
                .first()
            )
            if not product:
                raise NotFoundError(f"Product with ID {product_id} not found")

            if not product.is_active:
                logger.info(f"Product #{product_id} is already inactive")
                return False

            product.is_active = False

        self.cache.invalidate_all_for_product(product_id)
        self.cache.invalidate(STATS_KEY)
        logger.info(f"Product #{product_id} deactivated")
        return True

    def _load_active_products(self) -> list:
        with atomic(self.db, "list_products"):
            products = (
                self.db.query(Product)
                .filter(Product.is_active.is_(True))
                .order_by(Product.created_at.desc(), Product.id.desc())
                .all()
            )
            return [ProductResponse.model_validate(p).model_dump(mode="json") for p in products]

    def _load_product(self, product_id: int) -> Optional[dict]:
        with atomic(self.db, "get_product"):
            product = (
                self.db.query(Product)
                .filter(Product.id == product_id, Product.is_active.is_(True))
                .first()
            )
            if product is None:
                return None
            return ProductResponse.model_validate(product).model_dump(mode="json")
