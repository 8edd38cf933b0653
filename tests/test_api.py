from bson import ObjectId
from jose import jwt

from database import CATEGORY, PRODUCT, REVIEW, USER


def product_payload(category_id, **overrides):
    payload = {
        "name": "Olive Oil",
        "description": "Cold pressed",
        "brand": "Acme",
        "price": 9.5,
        "category_id": str(category_id),
        "count_in_stock": 3,
        "size": ["M"],
        "images": [{"url": "https://res.cloudinary.com/demo/image/upload/v1/p/a.jpg", "storage_id": "p/a"}],
    }
    payload.update(overrides)
    return payload


# ============================================================================
# Service
# ============================================================================

def test_root(client):
    assert client.get("/").json() == {"message": "Catalog backend is running"}


# ============================================================================
# Auth
# ============================================================================

class TestAuth:

    def signup(self, client, **overrides):
        body = {"username": "alice", "email": "Alice@Example.com", "password": "s3cretpass"}
        body.update(overrides)
        return client.post("/api/auth/signup", json=body)

    def test_signup_and_login(self, client, store, settings):
        res = self.signup(client)
        assert res.status_code == 201
        body = res.json()
        assert body["user"]["email"] == "alice@example.com"
        assert "password_hash" not in body["user"]
        stored = store.find_one(USER, {"username": "alice"})
        assert stored["password_hash"] != "s3cretpass"

        res = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "s3cretpass"})
        assert res.status_code == 200
        token = res.json()["token"]
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        assert claims["sub"] == str(stored["_id"])

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["username"] == "alice"

    def test_duplicates(self, client):
        self.signup(client)
        res = self.signup(client, username="bob")
        assert res.status_code == 400
        assert res.json()["detail"] == "Email already in use"
        res = self.signup(client, email="bob@example.com")
        assert res.json()["detail"] == "Username already taken"

    def test_short_password(self, client):
        assert self.signup(client, password="short").status_code == 422

    def test_bad_credentials(self, client):
        self.signup(client)
        res = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "wrongpass"})
        assert res.status_code == 401

    def test_me_requires_valid_token(self, client):
        assert client.get("/api/auth/me").status_code == 401
        res = client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
        assert res.status_code == 401


# ============================================================================
# Categories
# ============================================================================

class TestCategories:

    def test_create_get_list(self, client):
        res = client.post("/api/categories/", json={"name": " Fresh Fruit ", "images": ["https://x/y.jpg"]})
        assert res.status_code == 201
        created = res.json()
        assert created["slug"] == "fresh-fruit"
        assert created["color"] == "#FFFFFF"
        assert created["subcategory_ids"] == []

        assert client.get(f"/api/categories/{created['id']}").json()["name"] == "Fresh Fruit"
        assert [c["id"] for c in client.get("/api/categories/").json()] == [created["id"]]

    def test_validation(self, client, category):
        assert client.post("/api/categories/", json={"name": "X", "images": []}).status_code == 422
        res = client.post("/api/categories/", json={"name": "X", "images": ["u"], "color": "red"})
        assert res.status_code == 422
        res = client.post("/api/categories/", json={"name": "X", "images": ["u"], "parent_id": str(ObjectId())})
        assert res.status_code == 400
        res = client.post("/api/categories/", json={"name": "Groceries", "images": ["u"]})
        assert res.status_code == 409

    def test_counts(self, client, category):
        client.post("/api/categories/", json={"name": "Fruit", "images": ["u"], "parent_id": str(category["_id"])})
        assert client.get("/api/categories/counts").json() == {"parent_categories": 1, "sub_categories": 1}

    def test_invalid_and_missing_id(self, client):
        assert client.get("/api/categories/nope").status_code == 400
        assert client.get(f"/api/categories/{ObjectId()}").status_code == 404

    def test_update_with_upload(self, client, category, assets):
        res = client.put(
            f"/api/categories/{category['_id']}",
            data={"name": "Pantry", "color": "#000"},
            files=[("images", ("a.jpg", b"img", "image/jpeg"))],
        )
        assert res.status_code == 200
        body = res.json()
        assert body["name"] == "Pantry"
        assert body["color"] == "#000"
        assert body["images"] == [assets.stored[0].url]

    def test_upload_rejects_wrong_type(self, client, assets):
        res = client.post("/api/categories/upload", files=[("images", ("a.txt", b"x", "text/plain"))])
        assert res.status_code == 400
        assert assets.stored == []

    def test_upload_and_delete_image(self, client, store, assets):
        res = client.post("/api/categories/upload", files=[("images", ("a.jpg", b"img", "image/jpeg"))])
        assert res.status_code == 201
        url = res.json()["images"][0]

        res = client.request("DELETE", "/api/categories/delete", json={"img_url": url})
        assert res.status_code == 200
        assert assets.deleted == [assets.stored[0].storage_id]
        assert client.get("/api/uploads/").json()[0]["images"] == []

    def test_delete(self, client, store, category, assets):
        store.update_by_id(CATEGORY, category["_id"], {"$set": {"images": [
            "https://res.cloudinary.com/demo/image/upload/v1/ecommerce/categories/a.jpg",
        ]}})
        assets.failing.add("ecommerce/categories/a")
        assert client.delete(f"/api/categories/{category['_id']}").status_code == 200
        assert store.find_by_id(CATEGORY, category["_id"]) is None
        assert client.delete(f"/api/categories/{category['_id']}").status_code == 404

    def test_product_count(self, client, category, product):
        assert client.get(f"/api/categories/{category['_id']}/product-count").json() == {"count": 1}


# ============================================================================
# Subcategories
# ============================================================================

class TestSubcategoryRoutes:

    def test_create_list_delete(self, client, store, category):
        res = client.post("/api/subcategories/", json={"name": "Oils", "parent_id": str(category["_id"])})
        assert res.status_code == 201
        sub_id = res.json()["id"]
        assert store.find_by_id(CATEGORY, category["_id"])["subcategory_ids"] == [ObjectId(sub_id)]

        listed = client.get("/api/subcategories/with-parent", params={"name": "oil"}).json()
        assert listed["count"] == 1
        assert listed["items"][0]["parent_category"]["name"] == "Groceries"

        by_parent = client.get(f"/api/subcategories/by-parent/{category['_id']}").json()
        assert [s["id"] for s in by_parent] == [sub_id]

        assert client.delete(f"/api/subcategories/{sub_id}").status_code == 200
        assert store.find_by_id(CATEGORY, category["_id"])["subcategory_ids"] == []

    def test_unknown_parent(self, client):
        res = client.post("/api/subcategories/", json={"name": "Oils", "parent_id": str(ObjectId())})
        assert res.status_code == 400


# ============================================================================
# Products
# ============================================================================

class TestProducts:

    def test_create_and_fetch(self, client, category):
        res = client.post("/api/products/", json=product_payload(category["_id"]))
        assert res.status_code == 201
        created = res.json()
        assert created["slug"].startswith("olive-oil-")
        assert (created["average_rating"], created["num_reviews"], created["ratings"]) == (0.0, 0, [])

        fetched = client.get(f"/api/products/{created['id']}").json()
        assert fetched["category"]["name"] == "Groceries"

        view = client.get(f"/api/products/view/{created['slug']}").json()
        assert view["product"]["id"] == created["id"]
        assert view["related"] == []

    def test_create_validation(self, client, category):
        res = client.post("/api/products/", json=product_payload(ObjectId()))
        assert res.status_code == 400
        res = client.post("/api/products/", json=product_payload(category["_id"], size=["HUGE"]))
        assert res.status_code == 422
        res = client.post("/api/products/", json=product_payload(category["_id"], images=[]))
        assert res.status_code == 422

    def test_list_filters_and_pagination(self, client, category):
        for i, brand in enumerate(["Acme", "Acme", "Other"]):
            client.post("/api/products/", json=product_payload(category["_id"], name=f"Item {i}", brand=brand, price=i))
        res = client.get("/api/products/", params={"brand": "Acme", "limit": 1, "sort_by": "price:desc"}).json()
        assert res["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
        assert res["items"][0]["name"] == "Item 1"

        res = client.get("/api/products/", params={"search": "item 2"}).json()
        assert [p["name"] for p in res["items"]] == ["Item 2"]

        assert client.get("/api/products/", params={"sort_by": "password:asc"}).status_code == 400

    def test_update_can_not_touch_ratings(self, client, product):
        res = client.put(
            f"/api/products/{product['_id']}",
            json={"price": 12.0, "average_rating": 5, "num_reviews": 99, "ratings": [{"value": 5}]},
        )
        assert res.status_code == 200
        body = res.json()
        assert body["price"] == 12.0
        assert (body["average_rating"], body["num_reviews"], body["ratings"]) == (0.0, 0, [])

    def test_delete(self, client, store, assets, product):
        assert client.delete(f"/api/products/{product['_id']}").status_code == 200
        assert assets.deleted == ["ecommerce/products/a", "ecommerce/products/b"]
        assert store.find_by_id(PRODUCT, product["_id"]) is None

    def test_delete_image(self, client, product, assets):
        res = client.request(
            "DELETE", f"/api/products/{product['_id']}/images", json={"storage_id": "ecommerce/products/b"}
        )
        assert res.status_code == 200
        assert assets.deleted == ["ecommerce/products/b"]

    def test_upload(self, client, assets):
        res = client.post(
            "/api/products/upload",
            files=[("images", ("a.jpg", b"1", "image/jpeg")), ("images", ("b.png", b"2", "image/png"))],
        )
        assert res.status_code == 200
        assert [f["storage_id"] for f in res.json()["files"]] == [a.storage_id for a in assets.stored]

    def test_upload_limit(self, client, settings):
        files = [("images", (f"{i}.jpg", b"1", "image/jpeg")) for i in range(settings.max_upload_files + 1)]
        assert client.post("/api/products/upload", files=files).status_code == 400


# ============================================================================
# Reviews
# ============================================================================

class TestReviewRoutes:

    def add(self, client, product, value, text="ok", **extra):
        return client.post("/api/reviews/", json={"product_id": str(product["_id"]), "value": value, "text": text, **extra})

    def test_aggregate_scenario(self, client, product):
        first = self.add(client, product, 4)
        assert first.status_code == 201
        assert first.json()["aggregate_stale"] is False

        second = self.add(client, product, 5).json()
        assert (second["product"]["average_rating"], second["product"]["num_reviews"]) == (4.5, 2)

        listed = client.get(f"/api/reviews/{product['_id']}").json()
        assert (listed["average_rating"], listed["num_reviews"]) == (4.5, 2)

        res = client.delete(f"/api/reviews/{first.json()['review']['id']}").json()
        assert (res["product"]["average_rating"], res["product"]["num_reviews"]) == (5.0, 1)

        res = client.delete(f"/api/reviews/{second['review']['id']}").json()
        assert (res["product"]["average_rating"], res["product"]["num_reviews"]) == (0.0, 0)

    def test_value_out_of_range(self, client, store, product):
        assert self.add(client, product, 6).status_code == 422
        assert store.count(REVIEW) == 0

    def test_unknown_product(self, client):
        res = client.post("/api/reviews/", json={"product_id": str(ObjectId()), "value": 3, "text": "ok"})
        assert res.status_code == 404

    def test_invalid_user_id_is_dropped(self, client, product):
        res = self.add(client, product, 3, user_id="someone")
        assert res.json()["review"]["user_id"] is None

    def test_token_user_wins(self, client, product):
        signup = client.post(
            "/api/auth/signup", json={"username": "carol", "email": "carol@example.com", "password": "s3cretpass"}
        ).json()
        res = client.post(
            "/api/reviews/",
            json={"product_id": str(product["_id"]), "value": 5, "text": "yes", "user_id": str(ObjectId())},
            headers={"Authorization": f"Bearer {signup['token']}"},
        )
        assert res.json()["review"]["user_id"] == signup["user"]["id"]

    def test_delete_review_after_product_is_gone(self, client, store, product):
        review_id = self.add(client, product, 4).json()["review"]["id"]
        client.delete(f"/api/products/{product['_id']}")
        res = client.delete(f"/api/reviews/{review_id}")
        assert res.status_code == 200
        assert res.json()["product"] is None
        assert client.delete(f"/api/reviews/{review_id}").status_code == 404

    def test_recompute_route(self, client, store, product):
        store.create(REVIEW, {"product_id": product["_id"], "value": 2, "text": "imported"})
        res = client.post(f"/api/products/{product['_id']}/recompute-rating")
        assert res.json() == {"average_rating": 2.0, "num_reviews": 1}
        assert client.post(f"/api/products/{ObjectId()}/recompute-rating").status_code == 404
