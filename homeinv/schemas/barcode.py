from pydantic import BaseModel, Field

class ProductInfo(BaseModel):
    upc: str
    name: str
    description: str | None = None
    brand: str | None = None
    color: str | None = None
    size: str | None = None
    category: str | None = None
    image_url: str | None = None
    features: list[str] = Field(default_factory=list)
    ingredients: str | None = None
    source: str
