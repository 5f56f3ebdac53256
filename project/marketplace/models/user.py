# marketplace/models/user.py

import enum

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum

from marketplace.utils.database import Base, utcnow


class Role(str, enum.Enum):
    USER = "USER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value) -> "Role":
        """Роль из claims провайдера: регистр не важен, неизвестное → USER."""
        if isinstance(value, cls):
            return value
        return cls.__members__.get(str(value or "").strip().upper(), cls.USER)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)  # автоинкремент
    external_id = Column(String, unique=True, nullable=False, index=True)  # sub из токена провайдера
    email = Column(String, nullable=True)
    name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    role = Column(Enum(Role, native_enum=False, length=20), nullable=False, default=Role.USER)
    is_seller = Column(Boolean, default=False)       # подал заявку продавца
    is_verified = Column(Boolean, default=False)     # документы продавца одобрены
    created_at = Column(DateTime(timezone=True), default=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
