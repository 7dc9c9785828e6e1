"""
Transaction Models for txledger

A transaction is the only record the ledger ever persists. The on-disk
shape is fixed: four keys, `from`, `to`, `value`, `data`, in that order,
one compact JSON object per line. Existing logs depend on it.

DESIGN DECISION: Amounts are plain Python ints constrained to the unsigned
64-bit range. Pydantic strict mode rejects floats, bools and numeric
strings instead of coercing them.
"""

from typing import Annotated, Union

from pydantic import BaseModel, ConfigDict, Field


# Upper bound of the unsigned balance domain (uint64)
MAX_BALANCE = 2**64 - 1

# `data` value that marks a reward transaction
REWARD_MARKER = "reward"

Account = str

Amount = Annotated[int, Field(ge=0, le=MAX_BALANCE, strict=True)]

Balances = dict[Account, int]


class Transaction(BaseModel):
    """
    An immutable value transfer between two accounts.

    A reward transaction (data == "reward") credits `to` without
    debiting `from`.
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )

    from_: Account = Field(
        ...,
        alias="from",
        description="Sending account"
    )
    to: Account = Field(
        ...,
        description="Receiving account"
    )
    value: Amount = Field(
        ...,
        description="Amount moved, in the unsigned balance domain"
    )
    data: str = Field(
        default="",
        description="Free-form note; the literal 'reward' marks a reward"
    )

    @property
    def is_reward(self) -> bool:
        return self.data == REWARD_MARKER

    @classmethod
    def reward(cls, to: Account, value: int, from_: Account = "") -> "Transaction":
        """Build a reward transaction crediting `to` with `value`."""
        return cls(from_=from_, to=to, value=value, data=REWARD_MARKER)

    def to_record(self) -> str:
        """
        Encode as a single ledger frame (without the trailing newline).

        Key order and compact separators match existing ledger files.
        """
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_record(cls, record: Union[str, bytes]) -> "Transaction":
        """
        Decode one ledger frame.

        Raises:
            pydantic.ValidationError: If the frame is not a valid transaction
        """
        return cls.model_validate_json(record)
