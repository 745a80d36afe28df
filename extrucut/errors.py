"""
Erros estruturados do motor de otimização
"""

from typing import Any, Dict, Iterable, List, Optional


class OptimizationError(Exception):
    """Base de todos os erros do motor; serializável para a camada chamadora"""

    code = "optimization_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class EmptyInputError(OptimizationError):
    code = "empty_input"

    def __init__(self, message: str = "Nenhuma peça informada para otimização"):
        super().__init__(message)


class ItemTooLongError(OptimizationError):
    """Peças que não cabem em nenhuma barra disponível do seu perfil"""

    code = "item_too_long"

    def __init__(self, item_ids: Iterable[str]):
        self.item_ids: List[str] = list(dict.fromkeys(item_ids))
        super().__init__(
            f"Peças maiores que todas as barras disponíveis: {', '.join(self.item_ids)}",
            {"item_ids": self.item_ids},
        )

    @property
    def item_id(self) -> str:
        return self.item_ids[0]


class MissingStockOptionError(OptimizationError):
    code = "missing_stock_option"

    def __init__(self, profile_types: Iterable[str]):
        self.profile_types: List[str] = list(dict.fromkeys(profile_types))
        super().__init__(
            f"Nenhuma barra cadastrada para os perfis: {', '.join(self.profile_types)}",
            {"profile_types": self.profile_types},
        )

    @property
    def profile_type(self) -> str:
        return self.profile_types[0]


class InfeasibleConstraintError(OptimizationError):
    """Peças cujas restrições não podem ser atendidas por nenhum corte"""

    code = "infeasible_constraint"

    def __init__(self, item_ids: Iterable[str], reason: str):
        self.item_ids: List[str] = list(dict.fromkeys(item_ids))
        self.reason = reason
        super().__init__(
            f"Peças {', '.join(self.item_ids)}: {reason}",
            {"item_ids": self.item_ids, "reason": reason},
        )

    @property
    def item_id(self) -> str:
        return self.item_ids[0]


class InvalidConfigurationError(OptimizationError):
    code = "invalid_configuration"


class OptimizationCancelledError(OptimizationError):
    code = "cancelled"

    def __init__(self, message: str = "Otimização cancelada"):
        super().__init__(message)


class InvariantViolationError(OptimizationError):
    """Plano gerado viola conservação, capacidade ou tolerância"""

    code = "invariant_violation"
