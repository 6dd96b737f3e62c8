"""Agent-related data models."""

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class WalletHandle:
    """Opaque reference to a provider-managed session wallet."""

    wallet_id: str
    wallet_address: str
    is_autonomous: bool = False


@dataclass
class AgentProfile:
    """Identity and capability record of a registered agent."""

    agent_id: str
    agent_name: str
    session_wallet: WalletHandle
    services: list[str] = field(default_factory=list)
    fixed_pricing: dict[str, Decimal] = field(default_factory=dict)  # service -> unit price
    is_online: bool = True

    def offers(self, service_type: str) -> bool:
        """Check whether this agent advertises a service."""
        return service_type in self.services
