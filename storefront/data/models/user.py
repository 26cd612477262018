from sqlalchemy import Column, String

from storefront.data.database import Base


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="customer")
