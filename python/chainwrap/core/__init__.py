"""Wrapper-chain engine core.

Components, leaves first:
- TargetResolver: dotted path to (host, slot name, setter flag)
- Registration: one package's contribution to one slot half
- ChainBuilder: registration list to ordered CompiledChain
- Wrapper: interception state and installed slot for one host slot
- ConflictDetector: duplicate and OVERRIDE contest rules
- WrapperRegistry: process-wide set of live wrappers
"""

from __future__ import annotations

from .chain_builder import ChainBuilder, ChainLink, ChainRun, CompiledChain, Continuation
from .conflicts import ConflictDetector, ConflictRecord, ConflictRegistry, IgnoreRule
from .registration import Registration
from .slots import HostType, SlotDescriptor, detect_slot_kind
from .target_resolver import (
    Namespace,
    ResolvedTarget,
    TargetResolver,
    is_valid_identifier,
    is_valid_target,
    split_target,
)
from .wrapper import Wrapper
from .wrapper_registry import WrapperRegistry

__all__ = [
    # Targets
    "Namespace",
    "ResolvedTarget",
    "TargetResolver",
    "is_valid_identifier",
    "is_valid_target",
    "split_target",
    # Chains
    "ChainBuilder",
    "ChainLink",
    "ChainRun",
    "CompiledChain",
    "Continuation",
    "Registration",
    # Slots
    "HostType",
    "SlotDescriptor",
    "Wrapper",
    "detect_slot_kind",
    # Bookkeeping
    "ConflictDetector",
    "ConflictRecord",
    "ConflictRegistry",
    "IgnoreRule",
    "WrapperRegistry",
]
