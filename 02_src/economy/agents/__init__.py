"""Agents module."""

from .base import BaseAgent, IAgent
from .buyer import BuyerAgent
from .seller import SellerAgent

__all__ = ["BaseAgent", "BuyerAgent", "IAgent", "SellerAgent"]
