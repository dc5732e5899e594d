import io

import pytest
from PIL import Image as PILImage
from werkzeug.datastructures import FileStorage

from app import create_app
from app.errors import UploadError
from app.extensions import db as _db
from app.models.category import Category, Subcategory
from app.models.quantity_price import SubcategoryQuantityPrice


class FakeStorage:
    """In-memory object storage with the storage_service interface."""

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_upload = False
        self.fail_delete = False
        self._counter = 0

    def upload_many(self, payloads, path_prefix):
        if self.fail_upload:
            raise UploadError("Failed to upload variant images")
        results = []
        for payload in payloads:
            self._counter += 1
            key = f"{path_prefix.strip('/')}/img{self._counter}.jpg"
            self.objects[key] = payload["data"]
            results.append({"url": f"https://cdn.test/{key}", "key": key})
        return results

    def delete_many(self, keys):
        if self.fail_delete:
            raise RuntimeError("storage unavailable")
        for key in keys:
            self.objects.pop(key, None)
            self.deleted.append(key)


def png_bytes(color=(200, 30, 30), size=(8, 8)):
    buffer = io.BytesIO()
    PILImage.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def image_file(field="variantImages", filename="photo.png", color=(200, 30, 30)):
    """An uploaded image as Flask hands it to a view."""
    return FileStorage(
        stream=io.BytesIO(png_bytes(color)),
        filename=filename,
        name=field,
        content_type="image/png",
    )


@pytest.fixture(scope="session")
def app():
    """Create application for testing."""
    app = create_app("testing")
    with app.app_context():
        yield app


@pytest.fixture
def db(app):
    """Fresh schema for every test."""
    _db.create_all()
    yield _db
    _db.session.remove()
    _db.drop_all()


@pytest.fixture
def client(app, db):
    return app.test_client()


@pytest.fixture
def storage(app):
    fake = FakeStorage()
    app.extensions["object_storage"] = fake
    yield fake
    app.extensions.pop("object_storage", None)


@pytest.fixture
def catalog(db):
    """A category with one subcategory and no tier rules."""
    category = Category(name="Shirts")
    db.session.add(category)
    db.session.flush()
    subcategory = Subcategory(category_id=category.id, name="Formal Shirts")
    db.session.add(subcategory)
    db.session.commit()
    return {"category": category, "subcategory": subcategory}


@pytest.fixture
def add_rule(db):
    def _add(subcategory, quantity, price_type, value, is_active=True):
        rule = SubcategoryQuantityPrice(
            subcategory_id=subcategory.id,
            quantity=quantity,
            price_type=price_type,
            value=value,
            is_active=is_active,
        )
        db.session.add(rule)
        db.session.commit()
        return rule

    return _add


@pytest.fixture
def make_image():
    return image_file


@pytest.fixture
def make_png():
    return png_bytes
