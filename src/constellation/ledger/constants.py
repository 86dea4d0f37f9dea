# src/constellation/ledger/constants.py
from __future__ import annotations

"""Game constants.

Default game parameters:
- 25 constellations, indexed 0..24
- 144 blocks per cycle (roughly one day of Bitcoin blocks)
- allocation split 30 / 40 / 25 / 5 (current cycle / treasury / team fee / referral)
- 1,000,000 sats minimum allocation, 100 sats flat reward-claim fee
"""

NUM_CONSTELLATIONS: int = 25

# Cycle schedule
START_BLOCK: int = 0
DEFAULT_BLOCKS_PER_CYCLE: int = 144

# Allocation split, percent
DEFAULT_ALLOCATION_PERCENTAGES = {
    "current_cycle": 30,
    "treasury": 40,
    "team_fee": 25,
    "referral_reward": 5,
}
ALLOCATION_BUCKETS = ("current_cycle", "treasury", "team_fee", "referral_reward")

DEFAULT_MIN_ALLOCATION: int = 1_000_000
DEFAULT_REWARD_CLAIM_FEE: int = 100
DEFAULT_TREASURY_DISTRIBUTION_PERIOD: int = 3

# Whole cycles an ended cycle's prize stays claimable before it may be swept
# back into the treasury.
DEFAULT_PRIZE_EXPIRATION_CYCLES: int = 10

# Pooled account that holds every sat under management.
CONTRACT_ACCOUNT_ID: str = "CONTRACT"

SYSTEM_SIGNER: str = "SYSTEM"
