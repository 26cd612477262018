# storefront/services/address_service.py
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.address import ADDRESS_TYPES, AddressModel
from storefront.domain.errors import Conflict, NotFound, ValidationError
from storefront.domain.schemas import AddressIn, AddressOut, AddressUpdateIn
from storefront.repos.address_repo import AddressRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# kolumny NOT NULL - w PUT nie mozna ich wyzerowac
REQUIRED_FIELDS = ("type", "name", "address_line_1", "city", "state", "zip_code", "country")


class AddressService:
    """
    Adresy uzytkownika. Niezmiennik: dla (user, type) max jeden adres z is_default.
    Zmiana domyslnego to zawsze clear-then-set w jednej transakcji.
    """

    def __init__(self, db: Session):
        self.repo = AddressRepo(db)

    def list_addresses(self, user_id: str, address_type: Optional[str] = None) -> List[AddressOut]:
        if address_type is not None and address_type not in ADDRESS_TYPES:
            address_type = None
        return [AddressOut.model_validate(a) for a in self.repo.list_addresses(user_id, address_type)]

    def get_address(self, user_id: str, address_id: str) -> AddressOut:
        address = self.repo.get_address(user_id, address_id)
        if not address:
            raise NotFound("Adres nie istnieje")
        return AddressOut.model_validate(address)

    def create_address(self, user_id: str, payload: AddressIn) -> AddressOut:
        if payload.type not in ADDRESS_TYPES:
            raise ValidationError("Niepoprawny typ adresu")

        try:
            # pierwszy adres danego typu zostaje domyslnym
            make_default = payload.is_default or self.repo.count_of_type(user_id, payload.type) == 0
            if make_default:
                self.repo.lock_addresses_of_type(user_id, payload.type)
                self.repo.clear_defaults(user_id, payload.type)

            address = self.repo.add_address(
                AddressModel(
                    user_id=user_id,
                    **payload.model_dump(exclude={"is_default"}),
                    is_default=make_default,
                )
            )
            self.repo.commit()
        except IntegrityError:
            self.repo.rollback()
            raise Conflict("Rownolegla zmiana adresu domyslnego, sprobuj ponownie")
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Utworzono adres {address.id} ({address.type}) dla uzytkownika {user_id}")
        return AddressOut.model_validate(address)

    def delete_address(self, user_id: str, address_id: str) -> None:
        try:
            if self.repo.delete_address(user_id, address_id) == 0:
                raise NotFound("Adres nie istnieje")
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Usunieto adres {address_id} uzytkownika {user_id}")

    def set_default(self, user_id: str, address_id: str) -> tuple[AddressOut, bool]:
        """
        Ustawia adres jako domyslny dla jego typu.

        1. adres musi nalezec do uzytkownika (inaczej NotFound)
        2. juz domyslny - nic nie zapisujemy
        3. lock wszystkich adresow (user, type), clear defaultow, set na docelowym, commit

        Zwraca (adres, czy_byla_zmiana).
        """
        try:
            address = self.repo.get_address(user_id, address_id)
            if not address:
                raise NotFound("Adres nie istnieje")

            locked = {a.id: a for a in self.repo.lock_addresses_of_type(user_id, address.type)}

            # stan po zalozeniu locka, mogl sie zmienic od pierwszego odczytu
            target = locked.get(address_id)
            if target is None:
                raise NotFound("Adres nie istnieje")

            if target.is_default:
                current = AddressOut.model_validate(target)
                self.repo.rollback()
                logger.info(f"Adres {address_id} jest juz domyslny")
                return current, False

            self.repo.clear_defaults(user_id, target.type)
            self.repo.mark_default(user_id, address_id)
            self.repo.commit()
        except IntegrityError:
            self.repo.rollback()
            raise Conflict("Rownolegla zmiana adresu domyslnego, sprobuj ponownie")
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Adres {address_id} ustawiony jako domyslny ({target.type}) dla uzytkownika {user_id}")
        return self.get_address(user_id, address_id), True

    def update_address(self, user_id: str, address_id: str, payload: AddressUpdateIn) -> AddressOut:
        """
        Czesciowa aktualizacja adresu.

        - is_default=True: lock adresow docelowego typu, clear, set - jak w set_default
        - zmiana typu bez is_default: adres zachowuje flage tylko jesli w nowym
          typie nie ma innego domyslnego
        """
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("Brak pol do aktualizacji")
        for field in REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(f"Pole {field} nie moze byc puste")
        if "type" in changes and changes["type"] not in ADDRESS_TYPES:
            raise ValidationError("Niepoprawny typ adresu")

        make_default = changes.pop("is_default", None)

        try:
            address = self.repo.get_address(user_id, address_id)
            if not address:
                raise NotFound("Adres nie istnieje")

            new_type = changes.get("type", address.type)
            type_changed = new_type != address.type

            if make_default or type_changed:
                locked = self.repo.lock_addresses_of_type(user_id, new_type)
                other_default = any(a.is_default and a.id != address_id for a in locked)

                if make_default:
                    self.repo.clear_defaults(user_id, new_type)
                    changes["is_default"] = True
                elif type_changed and address.is_default and other_default:
                    changes["is_default"] = False

            if make_default is False:
                changes["is_default"] = False

            if self.repo.update_address(user_id, address_id, **changes) == 0:
                raise NotFound("Adres nie istnieje")
            self.repo.commit()
        except IntegrityError:
            self.repo.rollback()
            raise Conflict("Rownolegla zmiana adresu domyslnego, sprobuj ponownie")
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Zaktualizowano adres {address_id} uzytkownika {user_id}: {sorted(changes)}")
        return self.get_address(user_id, address_id)
