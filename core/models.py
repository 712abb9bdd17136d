from dataclasses import dataclass, field
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Canonical Sui address / object id format: 0x + 64 hex chars.
# All layers (api/, web/, CLI) that need to validate ids import from here.
SUI_ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{64}$"

SUI_COIN_TYPE = "0x2::sui::SUI"
MIST_PER_SUI = 1_000_000_000
CLOCK_OBJECT_ID = "0x6"

# Move call target: <package>::<module>::<function>
MOVE_TARGET_PATTERN = r"^0x[0-9a-fA-F]{1,64}::\w+::\w+$"


@dataclass
class MoveCall:
    """A pending transaction: one Move call, unsigned, sender not yet chosen.

    arguments are JSON-RPC values as the fullnode's transaction builder takes
    them: object ids and addresses as strings, integers as strings or ints,
    vector<u8> as lists of ints.
    """

    target: str
    arguments: list[Any] = field(default_factory=list)
    type_arguments: list[str] = field(default_factory=list)
    gas_budget: int = 10_000_000
    sender: Optional[str] = None

    @property
    def package(self) -> str:
        return self.target.split("::")[0]

    @property
    def module(self) -> str:
        return self.target.split("::")[1]

    @property
    def function(self) -> str:
        return self.target.split("::")[2]


@dataclass
class ExecutionResult:
    digest: str
    effects: dict[str, Any] = field(default_factory=dict)
    events: list[dict[str, Any]] = field(default_factory=list)
    object_changes: list[dict[str, Any]] = field(default_factory=list)

    @property
    def status(self) -> str:
        """Execution status reported in the effects ("success" / "failure")."""
        return self.effects.get("status", {}).get("status", "unknown")


def cast_vote_call(
    package_id: str,
    registry_id: str,
    poll_id: str,
    choice_id: str,
    voter_address: str,
    gas_budget: int = 10_000_000,
) -> MoveCall:
    """Build the voting program's cast_vote call.

    The voter argument is the zkLogin address as UTF-8 bytes; the program keys
    its one-vote-per-voter record on it.
    """
    return MoveCall(
        target=f"{package_id}::voting::cast_vote",
        arguments=[
            registry_id,
            poll_id,
            list(voter_address.encode("utf-8")),
            choice_id,
            CLOCK_OBJECT_ID,
        ],
        gas_budget=gas_budget,
    )
