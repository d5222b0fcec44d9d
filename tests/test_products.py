"""Tests for Product API endpoints."""
from decimal import Decimal


def create(client, **overrides):
    payload = {"name": "Test Product", "price": "99.99", "category": "Electronics", "stock": 10}
    payload.update(overrides)
    return client.post("/api/v1/products/", json=payload)


def test_create_product(client):
    """Test creating a new product."""
    response = create(client, description="Ergonomic", image_url="https://example.com/p.jpg")

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Test Product"
    assert Decimal(data["price"]) == Decimal("99.99")
    assert data["category"] == "Electronics"
    assert data["stock"] == 10
    assert data["description"] == "Ergonomic"
    assert "id" in data
    assert "created_at" in data


def test_create_product_defaults_stock_to_zero(client):
    response = client.post(
        "/api/v1/products/",
        json={"name": "Free Sample", "price": 0, "category": "Promo"}
    )

    assert response.status_code == 201
    assert response.json()["stock"] == 0
    assert Decimal(response.json()["price"]) == Decimal("0")


def test_create_product_invalid_price(client):
    """Test creating product with invalid price fails."""
    response = create(client, price=-10.00)

    assert response.status_code == 422  # Validation error


def test_create_product_invalid_stock(client):
    """Test creating product with negative stock fails."""
    response = create(client, stock=-5)

    assert response.status_code == 422


def test_create_product_requires_category(client):
    response = client.post("/api/v1/products/", json={"name": "No Category", "price": 5})

    assert response.status_code == 422


def test_get_product(client):
    """Test getting a product by ID."""
    product_id = create(client).json()["id"]

    response = client.get(f"/api/v1/products/{product_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == product_id
    assert data["name"] == "Test Product"


def test_get_product_not_found(client):
    """Test getting non-existent product returns 404."""
    response = client.get("/api/v1/products/9999")

    assert response.status_code == 404


def test_list_products(client):
    """Test listing all active products."""
    for i in range(5):
        create(client, name=f"Product {i}", price=10.00 + i)

    response = client.get("/api/v1/products/")

    assert response.status_code == 200
    data = response.json()
    assert len(data) == 5
    assert {item["name"] for item in data} == {f"Product {i}" for i in range(5)}


def test_list_products_reflects_new_product(client):
    create(client, name="First")
    assert len(client.get("/api/v1/products/").json()) == 1

    create(client, name="Second")

    assert len(client.get("/api/v1/products/").json()) == 2


def test_update_product(client):
    """Test updating a product."""
    product_id = create(client, name="Original Name", price=50.00).json()["id"]

    response = client.put(
        f"/api/v1/products/{product_id}",
        json={"name": "Updated Name", "price": 75.00}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Updated Name"
    assert Decimal(data["price"]) == Decimal("75.00")
    assert data["stock"] == 10  # Stock should remain unchanged


def test_update_is_not_masked_by_cache(client):
    product_id = create(client, price=50.00).json()["id"]
    client.get(f"/api/v1/products/{product_id}")
    client.get("/api/v1/products/")

    client.put(f"/api/v1/products/{product_id}", json={"price": 60.00})

    assert Decimal(client.get(f"/api/v1/products/{product_id}").json()["price"]) == Decimal("60.00")
    assert Decimal(client.get("/api/v1/products/").json()[0]["price"]) == Decimal("60.00")


def test_update_product_not_found(client):
    response = client.put("/api/v1/products/9999", json={"name": "Ghost"})

    assert response.status_code == 404


def test_delete_product(client):
    """Test soft-deleting a product."""
    product_id = create(client, name="To Delete").json()["id"]
    client.get(f"/api/v1/products/{product_id}")

    response = client.delete(f"/api/v1/products/{product_id}")
    assert response.status_code == 204

    # Verify it's hidden from reads
    assert client.get(f"/api/v1/products/{product_id}").status_code == 404
    assert client.get("/api/v1/products/").json() == []


def test_delete_product_twice_is_noop(client):
    product_id = create(client).json()["id"]

    assert client.delete(f"/api/v1/products/{product_id}").status_code == 204
    assert client.delete(f"/api/v1/products/{product_id}").status_code == 204


def test_delete_product_not_found(client):
    response = client.delete("/api/v1/products/9999")

    assert response.status_code == 404


def test_create_product_stock_out_of_range(client):
    assert create(client, stock=2**63).status_code == 422
    assert create(client, stock=2**31).status_code == 422
    assert client.get("/api/v1/products/").json() == []


def test_update_product_stock_out_of_range(client):
    product_id = create(client).json()["id"]

    response = client.put(f"/api/v1/products/{product_id}", json={"stock": 2**63})

    assert response.status_code == 422
    assert client.get(f"/api/v1/products/{product_id}").json()["stock"] == 10


def test_product_id_out_of_range(client):
    assert client.get(f"/api/v1/products/{2**63}").status_code == 422
    assert client.put(f"/api/v1/products/{2**63}", json={"stock": 1}).status_code == 422
    assert client.delete(f"/api/v1/products/{2**63}").status_code == 422


def test_reads_report_their_source(client):
    product_id = create(client).json()["id"]

    first = client.get(f"/api/v1/products/{product_id}")
    second = client.get(f"/api/v1/products/{product_id}")

    assert first.headers["X-Data-Source"] == "database"
    assert second.headers["X-Data-Source"] == "cache"
    assert first.json() == second.json()

    assert client.get("/api/v1/products/").headers["X-Data-Source"] == "database"
    assert client.get("/api/v1/products/").headers["X-Data-Source"] == "cache"


def test_mutation_sends_next_read_to_database(client):
    product_id = create(client).json()["id"]
    client.get(f"/api/v1/products/{product_id}")

    client.put(f"/api/v1/products/{product_id}", json={"stock": 4})
    response = client.get(f"/api/v1/products/{product_id}")

    assert response.headers["X-Data-Source"] == "database"
    assert response.json()["stock"] == 4
