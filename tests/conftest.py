from typing import List

import pytest

from capronesearch import Connection, Settings

from fakes import PRODUCTS, FakeElasticsearch, Product, ProductIndex


@pytest.fixture(autouse=True)
def clear_products():
    PRODUCTS.clear()
    yield
    PRODUCTS.clear()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("HOSTS", "INDEX_PREFIX", "BULK_LIMIT", "BULK_MAX_MB", "AUTO_REFRESH", "API_KEY"):
        monkeypatch.delenv(f"CAPRONE_{name}", raising=False)


@pytest.fixture
def fake() -> FakeElasticsearch:
    return FakeElasticsearch()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def connection(fake, settings) -> Connection:
    return Connection(settings=settings, client=fake)


@pytest.fixture
def products(connection) -> ProductIndex:
    return ProductIndex(connection=connection)


@pytest.fixture
def add_products(products):
    """Store products as records and index them."""

    def add(*items: Product) -> List[Product]:
        for item in items:
            PRODUCTS[item.id] = item
        products.import_records(list(items))
        return list(items)

    return add


@pytest.fixture
def catalog(add_products) -> List[Product]:
    return add_products(
        Product(1, "Harry Potter", "books", 50),
        Product(2, "The Hobbit", "books", 100),
        Product(3, "Kettle", "kitchen", 150, available=False),
        Product(4, "Blender", "kitchen", 200),
        Product(5, "Headphones", "audio", 250),
    )
