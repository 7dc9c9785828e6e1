"""
Genesis Snapshot Model

The genesis document is read once at startup and never written back.
Every balance the node reports is genesis plus the replayed log.
"""

from pydantic import BaseModel, ConfigDict, Field

from txledger.models.transaction import Account, Amount, Balances


class Genesis(BaseModel):
    """Immutable starting snapshot: chain metadata plus initial balances."""
    model_config = ConfigDict(frozen=True)

    genesis_time: str = Field(
        ...,
        description="Timestamp the chain was started at"
    )
    chain_id: str = Field(
        ...,
        description="Chain identifier"
    )
    balances: dict[Account, Amount] = Field(
        default_factory=dict,
        description="Initial account balances"
    )

    def initial_balances(self) -> Balances:
        """Return a fresh copy of the starting balances."""
        return dict(self.balances)
