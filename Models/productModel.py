from mongoengine import Document, StringField, DecimalField
from bson import ObjectId
from decimal import ROUND_HALF_UP

# Categories that carry a variant dimension, and the label shown for it
VARIANT_DIMENSIONS = {
    "shoe": "Size",
}
CATEGORIES = ("shoe", "hat")


class Product(Document):
    name = StringField(required=True)
    description = StringField(required=True)
    price = DecimalField(required=True, min_value=0, precision=2, rounding=ROUND_HALF_UP)
    image = StringField(default="")
    category = StringField(choices=CATEGORIES, default="shoe")

    meta = {
        'collection': 'products',
        'indexes': ['category']
    }

    @property
    def variant_label(self):
        return VARIANT_DIMENSIONS.get(self.category)

    @property
    def requires_variant(self) -> bool:
        return self.category in VARIANT_DIMENSIONS

    def to_json(self) -> dict:
        return {
            'id': str(self.id),
            'name': self.name,
            'description': self.description,
            'price': f"{self.price:.2f}",
            'image': self.image,
            'category': self.category,
            'variant_label': self.variant_label,
        }


def find_product(product_id):
    """Product lookup by id; None for unknown or malformed ids."""
    if not product_id or not ObjectId.is_valid(str(product_id)):
        return None
    return Product.objects(id=product_id).first()
