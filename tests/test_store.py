# =============================================
# File: tests/test_store.py
# Purpose: SqlStore as catalog / request sink / settings / key source (in-memory SQLite)
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from conftest import make_catalog
from concierge.cli.seed_catalog import parse_catalog
from concierge.db.repo import SqlStore, init_db, make_engine
from concierge.services.ai_config import AIConfigLoader, AISettings
from concierge.services.catalog import ProductRequestIn
from concierge.services.key_pool import Provider


@pytest.fixture
def store():
    bind = make_engine("sqlite://")
    init_db(bind)
    return SqlStore(bind)


async def _seed(store):
    cat = make_catalog()
    await store.seed_catalog(cat.categories, cat.products)
    return store


@pytest.mark.asyncio
async def test_catalog_filters(store):
    seeded = await _seed(store)
    assert len(await seeded.get_categories()) == 4
    bath = await seeded.get_products(category_id="cat-bath", available_only=True)
    assert [p.id for p in bath] == ["p1", "p2", "p3"]
    showers = await seeded.get_products(subcategory_id="sub-showers")
    assert [p.id for p in showers] == ["p3", "p4"]
    page = await seeded.get_products(limit=2, cursor="p2")
    assert [p.id for p in page] == ["p3", "p4"]

@pytest.mark.asyncio
async def test_seed_is_an_upsert(store):
    seeded = await _seed(store)
    cat = make_catalog()
    cat.products[0].price = 1999
    await seeded.seed_catalog([], cat.products[:1])
    p1 = (await seeded.get_products(subcategory_id="sub-faucets"))[0]
    assert p1.price == 1999
    assert len(await seeded.get_products()) == 5

@pytest.mark.asyncio
async def test_product_request_persisted(store):
    result = await store.create_product_request(ProductRequestIn(product_name="Jacuzzi", max_price=80000))
    assert result.success is True
    rows = await store.list_product_requests()
    assert [(r.product_name, r.max_price) for r in rows] == [("Jacuzzi", 80000)]

@pytest.mark.asyncio
async def test_settings_absent_then_saved(store):
    assert await store.get_ai_settings() is None
    loader = AIConfigLoader(store)
    assert (await loader.get()).persona_name == "Genie"
    await store.save_ai_settings(AISettings(persona_name="Asha", enabled=False))
    assert (await loader.get()).persona_name == "Genie"  # cached
    loader.invalidate()
    fresh = await loader.get()
    assert fresh.persona_name == "Asha" and fresh.enabled is False

@pytest.mark.asyncio
async def test_api_keys_from_store(store):
    await store.add_api_key("groq", "gsk_db_0001", key_id="k1")
    await store.add_api_key("mistral", "nope", key_id="k2")
    keys = await store.get_api_keys()
    assert [(k.id, k.provider) for k in keys] == [("k1", Provider.GROQ)]

def test_parse_catalog_file_shape():
    cats, prods = parse_catalog({
        "categories": [{"id": "c1", "name": "Tiles"}],
        "products": [{"id": "t1", "name": "Floor tile", "price": 45, "category_id": "c1"}],
    })
    assert cats[0].name == "Tiles"
    assert prods[0].available is True and prods[0].tags == []
