from typing import Any

from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
    id: Any
    __name__: str

    # Nombre de tabla por defecto; los modelos pueden fijar el suyo
    @declared_attr.directive
    def __tablename__(cls) -> str:
        return cls.__name__.lower()
