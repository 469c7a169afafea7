"""Approval gate."""

from .gate import ApprovalGate, IApprovalGate
from .heuristics import classify_command, is_dangerous

__all__ = ["ApprovalGate", "IApprovalGate", "classify_command", "is_dangerous"]
