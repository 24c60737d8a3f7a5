"""
Proposal Actions

A proposal carries an ordered list of ``(target, value, effect)`` triples.
The effect is one of a closed set of variants, each dispatched by the
engine in its own way:

  - TokenTransfer    : pay ``amount`` governance tokens to the target
  - ParameterChange  : set a named parameter on a GovernedTarget
  - ContractCall     : invoke a declared method on an ActionTarget
"""

from dataclasses import dataclass
from typing import (
    Any,
    Dict,
    FrozenSet,
    Protocol,
    Tuple,
    Union,
    runtime_checkable,
)


# ══════════════════════════════════════════════════════════════════════
#  TARGET INTERFACES
# ══════════════════════════════════════════════════════════════════════

@runtime_checkable
class ActionTarget(Protocol):
    """
    Component that accepts ContractCall effects.

    Only methods listed in ``governance_methods`` may be invoked.
    """

    governance_methods: FrozenSet[str]

    def handle_governance_call(self, method: str, args: Tuple[Any, ...], caller: str) -> Any:
        """Run *method* with *args* on behalf of the governance engine."""
        ...


@runtime_checkable
class GovernedTarget(Protocol):
    """Component exposing parameters that ParameterChange effects may set."""

    def apply_parameter_change(self, name: str, value: Any, caller: str) -> None:
        """Set *name* to *value*; *caller* is the engine applying the change."""
        ...


# ══════════════════════════════════════════════════════════════════════
#  EFFECTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TokenTransfer:
    """Transfer governance tokens held by the engine to the action target."""
    amount: int

    def __post_init__(self):
        if self.amount <= 0:
            raise ValueError(f"TokenTransfer amount must be positive, got {self.amount}")

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "TokenTransfer", "amount": str(self.amount)}


@dataclass(frozen=True)
class ParameterChange:
    name: str
    value: Any

    def __post_init__(self):
        if not self.name:
            raise ValueError("ParameterChange needs a parameter name")

    def to_dict(self) -> Dict[str, Any]:
        value = str(self.value) if isinstance(self.value, int) else self.value
        return {"kind": "ParameterChange", "name": self.name, "value": value}


@dataclass(frozen=True)
class ContractCall:
    method: str
    args: Tuple[Any, ...] = ()

    def __post_init__(self):
        if not self.method:
            raise ValueError("ContractCall needs a method name")
        # Lists are accepted for convenience but stored immutably
        object.__setattr__(self, "args", tuple(self.args))

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "ContractCall", "method": self.method, "args": list(self.args)}


ActionEffect = Union[TokenTransfer, ParameterChange, ContractCall]

EFFECT_TYPES = (TokenTransfer, ParameterChange, ContractCall)


@dataclass(frozen=True)
class ProposalAction:
    """
    One step of a proposal.

    Fields:
        target:  Identity the effect is applied to
        value:   Tokens forwarded to the target ahead of a ContractCall
        effect:  What happens
    """
    target: str
    value: int
    effect: ActionEffect

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "value": str(self.value),
            "effect": self.effect.to_dict(),
        }
