"""
Catalog Schemas

Normalized product model and the paginated result envelope returned by
the filter engine.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ProductMedia(CamelModel):
    url: str
    order: int = 0


class Product(CamelModel):
    """A catalog publication flattened into the fields search works with"""

    id: str = Field(..., min_length=1, description="Publication id")
    product_id: str = Field(..., min_length=1, description="Underlying product id")
    title: str = Field(..., min_length=1)
    description: str = ""
    price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1)
    condition: str = Field(..., min_length=1)
    stock: int = 0
    brand: str = ""
    media: list[ProductMedia] = []
    image: str | None = Field(None, description="URL of the first media item by order")


class PageMetadata(CamelModel):
    total: int
    page: int
    page_size: int
    total_pages: int
    has_more: bool


class ProductPage(CamelModel):
    """One page of filtered catalog products"""

    products: list[Product]
    metadata: PageMetadata


class CategoryCount(CamelModel):
    name: str
    total_products: int


class CategoriesResponse(CamelModel):
    total: int
    categories: list[CategoryCount]
