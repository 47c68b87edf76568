"""Core modules for the generator.

Board-agnostic generation stages:
- model: immutable hardware model (registers, bit-fields, access modes)
- ir_builder: description mapping -> PeripheralModel
- matcher: capability contracts -> Full / Partial / None
- planner: per-register access strategy and plan errors
- emitter: unit selection and ordering
- report: emission report for the diagnostics layer
- pipeline: generate(), the stages run in sequence
"""

from halgen.core.exceptions import ConfigurationError, HalGenError, ModelError, PlanError
from halgen.core.ir_builder import build_model
from halgen.core.matcher import match_capabilities
from halgen.core.model import (
    AccessMode,
    BitField,
    Endianness,
    PeripheralModel,
    Register,
    WriteAction,
)
from halgen.core.planner import (
    AccessPlan,
    AccessStrategy,
    FieldPlan,
    PlanSet,
    WriteMethod,
    plan_access,
)
from halgen.core.report import EmissionReport, Reach

__all__ = [
    # Errors
    "HalGenError",
    "ConfigurationError",
    "ModelError",
    "PlanError",
    # Model
    "AccessMode",
    "BitField",
    "Endianness",
    "PeripheralModel",
    "Register",
    "WriteAction",
    "build_model",
    # Matching
    "match_capabilities",
    # Planning
    "AccessPlan",
    "AccessStrategy",
    "FieldPlan",
    "PlanSet",
    "WriteMethod",
    "plan_access",
    # Report
    "EmissionReport",
    "Reach",
]
