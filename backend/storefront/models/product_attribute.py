import enum

from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from storefront.db.base import Base
from storefront.models.product import IdType


class AttributeDataType(str, enum.Enum):
    STRING = "STRING"
    NUMERIC = "NUMERIC"
    BOOLEAN = "BOOLEAN"
    ENUM = "ENUM"


class AttributeDefinition(Base):
    __tablename__ = "attribute_definitions"

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=False)
    data_type = Column(String(50), nullable=False, default=AttributeDataType.STRING.value)
    unit = Column(String(50), nullable=True)
    is_filterable = Column(Boolean, default=True, nullable=False)
    is_searchable = Column(Boolean, default=False, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    values = relationship("ProductSpecification", back_populates="attribute", cascade="all, delete-orphan")


class ProductSpecification(Base):
    __tablename__ = "product_specifications"
    __table_args__ = (
        UniqueConstraint("product_id", "attribute_id", name="uq_product_specifications_product_attribute"),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    attribute_id = Column(
        BigInteger,
        ForeignKey("attribute_definitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value_string = Column(Text, nullable=True)
    value_numeric = Column(Numeric(18, 4), nullable=True)
    value_boolean = Column(Boolean, nullable=True)

    product = relationship("Product", back_populates="specifications")
    attribute = relationship("AttributeDefinition", back_populates="values")
