from fastapi import APIRouter, Depends, HTTPException, Path, Response, status

from storefront.api.dependencies import get_product_service
from storefront.database import MAX_INTEGER
from storefront.exceptions import InvalidInputError, NotFoundError
from storefront.services.product_service import ProductService
from storefront.schemas.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
)

router = APIRouter(prefix="/products", tags=["Products"])

# Response header naming where a catalog read was served from: "cache" or "database"
SOURCE_HEADER = "X-Data-Source"


@router.post(
    "/",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new product",
    description="Create a new product. The cached catalog listing is invalidated."
)
def create_product(
    product_data: ProductCreate,
    service: ProductService = Depends(get_product_service)
):
    """
    Create a new product.

    - **name**: Product name (required)
    - **price**: Unit price, must be non-negative (required)
    - **category**: Catalog category (required)
    - **stock**: Initial stock quantity, defaults to 0
    - **description**, **image_url**: optional
    """
    try:
        return service.create(product_data)
    except InvalidInputError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.get(
    "/",
    response_model=list[ProductResponse],
    summary="List all products",
    description="Get every active product, newest first. Results are cached in Redis; "
                "the X-Data-Source header tells whether this response came from the cache."
)
def list_products(
    response: Response,
    service: ProductService = Depends(get_product_service)
):
    """Get the active catalog."""
    products, source = service.list_products_with_source()
    response.headers[SOURCE_HEADER] = source
    return products


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Get product by ID",
    description="Get detailed information about a specific product. Results are cached in Redis."
)
def get_product(
    response: Response,
    product_id: int = Path(..., le=MAX_INTEGER),
    service: ProductService = Depends(get_product_service)
):
    """
    Get a product by ID.

    Inactive (deleted) products are reported as not found.
    """
    try:
        product, source = service.get_product_with_source(product_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    response.headers[SOURCE_HEADER] = source
    return product


@router.put(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Update a product",
    description="Update product details. Only provided fields will be updated."
)
def update_product(
    product_data: ProductUpdate,
    product_id: int = Path(..., le=MAX_INTEGER),
    service: ProductService = Depends(get_product_service)
):
    """
    Update a product.

    Partial updates are supported - only include fields you want to change.
    Cache is automatically invalidated after update.
    """
    try:
        return service.update(product_id, product_data)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except InvalidInputError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a product",
    description="Soft-delete a product. Deleting an already deleted product is a no-op."
)
def delete_product(
    product_id: int = Path(..., le=MAX_INTEGER),
    service: ProductService = Depends(get_product_service)
):
    """Deactivate a product."""
    try:
        service.delete(product_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return None
