"""LP instance construction and in-place modification."""

from .builder import ModelBuilder
from .instance import BasisHandle, InstanceState, LPInstance
from .mutator import ModelMutator

__all__ = ["ModelBuilder", "ModelMutator", "LPInstance", "InstanceState", "BasisHandle"]
