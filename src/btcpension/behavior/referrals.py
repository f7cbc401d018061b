"""Referral tree composition - upstream yield sharing across referral levels.

Key Concepts:
- The nested ReferralNode input is flattened into an arena (node list plus
  parent/children index lists); indices grow with depth
- Every referral runs the canonical single-user simulator on the same price
  path, starting at its join delay
- Each month a referral pays upstream_share_pct of its gross yield to its
  referrer; the referrer buys BTC with it
- Nodes are simulated children-first so a parent's income is known before
  its own run
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..config.schema import ParticipantConfig, ReferralNode, ReferralSettings, UserSimulationInput
from ..engine.accounting import SimulationPoint
from ..engine.rates import months_for_years
from ..simulation.runner import simulate_user


@dataclass(frozen=True)
class TreeNode:
    """Arena entry for one participant of the referral tree."""
    index: int
    parent: Optional[int]  # None for the root user
    participant: ParticipantConfig
    join_delay_months: int
    count: int
    depth: int


class ReferralTree:
    """Flat arena of referral nodes; node 0 is the root user."""

    def __init__(self, nodes: List[TreeNode], children: List[List[int]]):
        self.nodes = nodes
        self.children = children

    @classmethod
    def build(cls, root: ParticipantConfig, referrals: Sequence[ReferralNode]) -> 'ReferralTree':
        """
        Flatten nested referral configs breadth-first.

        Args:
            root: The root user's participant config
            referrals: Direct referrals of the root

        Returns:
            ReferralTree

        Raises:
            ValueError: If a referral joins before its referrer
        """
        nodes = [TreeNode(index=0, parent=None, participant=root, join_delay_months=0, count=1, depth=0)]
        children: List[List[int]] = [[]]
        queue = [(0, ref) for ref in referrals]

        while queue:
            parent_index, ref = queue.pop(0)
            parent = nodes[parent_index]
            if ref.join_delay_months < parent.join_delay_months:
                raise ValueError(
                    f"Referral at depth {parent.depth + 1} joins at month {ref.join_delay_months}, "
                    f"before its referrer (month {parent.join_delay_months})"
                )
            index = len(nodes)
            nodes.append(TreeNode(
                index=index,
                parent=parent_index,
                participant=ref.participant,
                join_delay_months=ref.join_delay_months,
                count=ref.count,
                depth=parent.depth + 1,
            ))
            children.append([])
            children[parent_index].append(index)
            queue.extend((index, child) for child in ref.children)

        return cls(nodes, children)

    def __len__(self) -> int:
        return len(self.nodes)

    def total_participants(self) -> int:
        """Referred participants, expanding node counts down the tree."""
        multiplier = [0] * len(self.nodes)
        multiplier[0] = 1
        for node in self.nodes[1:]:
            multiplier[node.index] = multiplier[node.parent] * node.count
        return sum(multiplier[1:])

    def children_first(self) -> List[TreeNode]:
        """Nodes ordered so every child precedes its parent."""
        return list(reversed(self.nodes))


def root_participant(participant: ParticipantConfig) -> ParticipantConfig:
    """Participant without a referrer: the upstream share goes to the platform."""
    lending = participant.lending
    if lending.upstream_share_pct == 0:
        return participant
    return participant.model_copy(update={
        'lending': lending.model_copy(update={
            'fee_pct': lending.fee_pct + lending.upstream_share_pct,
            'upstream_share_pct': 0.0,
        })
    })


def simulate_referral_tree(
    user_input: UserSimulationInput,
    referrals: Sequence[ReferralNode],
    auto_draw_to_target: bool = True,
    snapshot_step: Optional[int] = None
) -> List[SimulationPoint]:
    """
    Simulate the root user together with a (multi-level) referral tree.

    The root has no referrer, so its own upstream share is booked as platform
    fee.

    Args:
        user_input: Root user's input; its market applies to every node
        referrals: Direct referrals of the root, each possibly with children
        auto_draw_to_target: Rebalancing policy for every participant
        snapshot_step: Root snapshot step (referrals are always run monthly)

    Returns:
        Root snapshots with btc_from_referrals / eur_from_referrals populated
    """
    root_input = user_input.with_participant(root_participant(user_input.participant))
    tree = ReferralTree.build(root_input.participant, referrals)
    months = months_for_years(user_input.market.years) + 1

    upstream_by_node = {}
    for node in tree.children_first():
        income = np.zeros(months)
        for child_index in tree.children[node.index]:
            income += tree.nodes[child_index].count * upstream_by_node.pop(child_index)

        if node.parent is None:
            return simulate_user(
                root_input,
                auto_draw_to_target=auto_draw_to_target,
                snapshot_step=snapshot_step,
                referral_income=income,
            )

        series = simulate_user(
            user_input.with_participant(node.participant),
            auto_draw_to_target=auto_draw_to_target,
            snapshot_step=1,
            start_month=node.join_delay_months,
            referral_income=income,
        )
        upstream_by_node[node.index] = np.array([point.upstream_paid for point in series])

    raise RuntimeError("referral tree has no root")


def simulate_user_with_referrals(
    user_input: UserSimulationInput,
    referral_settings: ReferralSettings,
    auto_draw_to_target: bool = True,
    snapshot_step: Optional[int] = None
) -> List[SimulationPoint]:
    """
    Simulate a user with `count` identical direct referrals.

    Each referral pays `share_pct` of its gross monthly yield to the user.

    Args:
        user_input: Root user's input
        referral_settings: Count, share and policy of the referrals
        auto_draw_to_target: Rebalancing policy
        snapshot_step: Root snapshot step

    Returns:
        Root snapshots with referral income fields
    """
    referrals = []
    if referral_settings.count > 0:
        participant = referral_settings.referral
        participant = participant.model_copy(update={
            'lending': participant.lending.model_copy(
                update={'upstream_share_pct': referral_settings.share_pct}
            )
        })
        referrals.append(ReferralNode(
            participant=participant,
            join_delay_months=referral_settings.join_delay_months,
            count=referral_settings.count,
        ))

    return simulate_referral_tree(
        user_input,
        referrals,
        auto_draw_to_target=auto_draw_to_target,
        snapshot_step=snapshot_step,
    )
