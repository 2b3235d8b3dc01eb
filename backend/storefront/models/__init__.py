from .product import Category, Product
from .product_attribute import AttributeDataType, AttributeDefinition, ProductSpecification
