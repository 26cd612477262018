# storefront/repos/address_repo.py
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from storefront.data.models.address import AddressModel


class AddressRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_address(self, user_id: str, address_id: str) -> AddressModel | None:
        return self.db.execute(
            select(AddressModel)
            .where(AddressModel.id == address_id, AddressModel.user_id == user_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock_addresses_of_type(self, user_id: str, address_type: str) -> list[AddressModel]:
        # SELECT ... FOR UPDATE w stalej kolejnosci (id), zeby dwa set_default sie nie zakleszczyly
        return list(
            self.db.execute(
                select(AddressModel)
                .where(AddressModel.user_id == user_id, AddressModel.type == address_type)
                .order_by(AddressModel.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def list_addresses(self, user_id: str, address_type: str | None = None) -> list[AddressModel]:
        stmt = select(AddressModel).where(AddressModel.user_id == user_id)
        if address_type:
            stmt = stmt.where(AddressModel.type == address_type)
        stmt = stmt.order_by(AddressModel.is_default.desc(), AddressModel.created_at.desc())
        return list(self.db.execute(stmt.execution_options(populate_existing=True)).scalars())

    def count_of_type(self, user_id: str, address_type: str) -> int:
        return self.db.execute(
            select(func.count())
            .select_from(AddressModel)
            .where(AddressModel.user_id == user_id, AddressModel.type == address_type)
        ).scalar_one()

    def clear_defaults(self, user_id: str, address_type: str) -> None:
        # bezwarunkowo - odporne na usuniety/zmieniony poprzedni domyslny
        self.db.execute(
            update(AddressModel)
            .where(
                AddressModel.user_id == user_id,
                AddressModel.type == address_type,
                AddressModel.is_default.is_(True),
            )
            .values(is_default=False, updated_at=datetime.now(timezone.utc))
        )

    def mark_default(self, user_id: str, address_id: str) -> int:
        result = self.db.execute(
            update(AddressModel)
            .where(AddressModel.id == address_id, AddressModel.user_id == user_id)
            .values(is_default=True, updated_at=datetime.now(timezone.utc))
        )
        return result.rowcount

    def add_address(self, address: AddressModel) -> AddressModel:
        self.db.add(address)
        self.db.flush()
        return address

    def update_address(self, user_id: str, address_id: str, **values) -> int:
        values["updated_at"] = datetime.now(timezone.utc)
        result = self.db.execute(
            update(AddressModel)
            .where(AddressModel.id == address_id, AddressModel.user_id == user_id)
            .values(**values)
        )
        return result.rowcount

    def delete_address(self, user_id: str, address_id: str) -> int:
        result = self.db.execute(
            delete(AddressModel).where(AddressModel.id == address_id, AddressModel.user_id == user_id)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
