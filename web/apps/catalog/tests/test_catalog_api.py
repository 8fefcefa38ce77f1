from decimal import Decimal

import pytest

from apps.catalog.models import Product


@pytest.mark.django_db
def test_lists_only_active_products(client):
    Product.objects.create(sku="MS-001", name="Classic Mangalsutra", price=Decimal("1000.00"))
    Product.objects.create(sku="MS-002", name="Retired Chain", price=Decimal("500.00"), is_active=False)

    r = client.get("/api/catalog/products/")
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 1
    assert body["results"][0]["sku"] == "MS-001"
    assert body["results"][0]["price"] == "1000.00"


@pytest.mark.django_db
def test_inactive_product_detail_is_404(client):
    p = Product.objects.create(sku="MS-003", name="Hidden", price=Decimal("10.00"), is_active=False)
    r = client.get(f"/api/catalog/products/{p.id}/")
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


@pytest.mark.django_db
def test_page_size_is_validated(client):
    Product.objects.create(sku="MS-004", name="Anklet", price=Decimal("700.00"))

    r = client.get("/api/catalog/products/", {"page_size": "0"})
    assert r.status_code == 200
    assert r.json()["page_size"] == 1

    r = client.get("/api/catalog/products/", {"page_size": "ten"})
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_QUERY"
