from sqlalchemy import Column, Integer, Numeric, String

from storefront.data.database import Base


class ProductModel(Base):
    # katalog jest tylko do odczytu dla koszyka i checkoutu
    __tablename__ = "products"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    image_url = Column(String(1024), nullable=True)
