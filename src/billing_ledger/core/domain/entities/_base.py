from dataclasses import asdict, fields, is_dataclass
from typing import Any, TypeVar

T = TypeVar("T")


class EntityMixin:
    def to_dict(self) -> dict[str, Any]:
        """Converte a entidade em dict, recursivamente se for dataclass."""
        return asdict(self)

    @classmethod
    def from_model(cls: type[T], model: Any, **overrides: Any) -> T:
        """
        Cria uma entidade a partir de um modelo Django.
        Campos da dataclass são lidos do model; `overrides` cobre relações
        (ex.: itens da fatura) que não são atributos simples.
        """
        if not is_dataclass(cls):
            raise TypeError(f"{cls.__name__} deve ser um dataclass")
        data: dict[str, Any] = {}
        for f in fields(cls):
            if f.name in overrides:
                data[f.name] = overrides[f.name]
            elif hasattr(model, f.name):
                data[f.name] = getattr(model, f.name)
        return cls(**data)
